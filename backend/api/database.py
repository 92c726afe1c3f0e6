"""
In-memory registry of scans started through the API.

Scan results are transient by nature (a user accepts or discards them), so
they are not persisted.
"""
from typing import Dict
from services.trip_scanner import ScanHandle

# In-memory storage
scans_db: Dict[str, ScanHandle] = {}
