"""
Country lookup caches keyed by a coordinate snapped to a ~1 km grid.

Both caches share the same tiny interface so the resolver does not care
which one it is handed:

    get(key) -> (hit, country)
    put(key, country)

`country` may be None: "this cell has no country" is a valid cached answer.
Lookup failures are never cached.
"""
from __future__ import annotations

import os
import sqlite3
import threading
import time
from typing import Dict, Optional, Tuple

BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
DATA_DIR = os.path.join(BASE_DIR, "data")
COUNTRY_CACHE_DB_FILENAME = "country_cache.sqlite"


class BoundedCountryCache:
    """In-memory cache that stops admitting new keys once full (no eviction)."""

    def __init__(self, max_entries: int = 4096):
        self.max_entries = max_entries
        self._entries: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Tuple[bool, Optional[str]]:
        with self._lock:
            if key in self._entries:
                return True, self._entries[key]
        return False, None

    def put(self, key: str, country: Optional[str]) -> None:
        with self._lock:
            if key in self._entries or len(self._entries) < self.max_entries:
                self._entries[key] = country

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCountryCache:
    """
    SQLite-backed country cache that survives restarts, with a TTL.

    An optional in-memory `memory` cache sits in front of the table so repeat
    cells within a process skip the database.
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        ttl_seconds: int = 180 * 24 * 3600,
        memory: Optional[BoundedCountryCache] = None,
    ):
        self.memory = memory
        self.db_path = db_path or os.path.join(DATA_DIR, COUNTRY_CACHE_DB_FILENAME)
        self.ttl_seconds = ttl_seconds
        os.makedirs(os.path.dirname(self.db_path), exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS country_cache (
                    cell_key TEXT PRIMARY KEY,
                    country TEXT,
                    fetched_at INTEGER NOT NULL
                )
                """
            )
            self._conn.commit()

    def get(self, key: str) -> Tuple[bool, Optional[str]]:
        if self.memory is not None:
            hit, country = self.memory.get(key)
            if hit:
                return True, country
        with self._lock:
            row = self._conn.execute(
                "SELECT country, fetched_at FROM country_cache WHERE cell_key=?",
                (key,),
            ).fetchone()
        if not row:
            return False, None
        country, fetched_at = row
        if self.ttl_seconds > 0 and (time.time() - (fetched_at or 0)) > self.ttl_seconds:
            return False, None
        if self.memory is not None:
            self.memory.put(key, country)
        return True, country

    def put(self, key: str, country: Optional[str]) -> None:
        if self.memory is not None:
            self.memory.put(key, country)
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO country_cache (cell_key, country, fetched_at) VALUES (?, ?, ?)",
                (key, country, int(time.time())),
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()
