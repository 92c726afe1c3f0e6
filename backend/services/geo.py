"""Great-circle distance and centroid helpers shared by the scan stages."""
from __future__ import annotations

import math
from typing import Iterable, Optional

from domain.models import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Compute distance in kilometers between two lat/lon points."""
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lon - a.lon)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    return haversine_km(a, b) * 1000.0


def compute_centroid(points: Iterable[Coordinate]) -> Optional[Coordinate]:
    """Compute the centroid of a collection of points (plain lat/lon mean)."""
    pts = list(points)
    if not pts:
        return None
    lat_sum = 0.0
    lon_sum = 0.0
    for p in pts:
        lat_sum += p.lat
        lon_sum += p.lon
    return Coordinate(lat_sum / len(pts), lon_sum / len(pts))


def offset_north(origin: Coordinate, distance_m: float) -> Coordinate:
    """Point `distance_m` due north of `origin` on the haversine sphere."""
    dlat = math.degrees(distance_m / (EARTH_RADIUS_KM * 1000.0))
    return Coordinate(origin.lat + dlat, origin.lon)


def coordinate_bucket_key(coord: Coordinate, decimals: int = 2) -> str:
    """
    Cache key for a coordinate snapped to a fixed grid.

    Two decimals is roughly a 1 km cell, which is plenty for country lookups.
    """
    lat = round(coord.lat, decimals)
    lon = round(coord.lon, decimals)
    # Normalize -0.0 so both sides of the equator/meridian share a key.
    lat = lat + 0.0
    lon = lon + 0.0
    return f"{lat:.{decimals}f},{lon:.{decimals}f}"
