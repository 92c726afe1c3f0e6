"""
Home-zone exclusion.

Photos taken inside the user's neighborhood zone are local life, not travel.
"""
from typing import Iterable, List, Optional, Tuple

from domain.models import NeighborhoodZone, PhotoRecord
from services.geo import haversine_m


def is_excluded(zone: Optional[NeighborhoodZone], photo: PhotoRecord) -> bool:
    """
    True iff the photo has a coordinate within `zone.radius_m` of the center.

    Photos without a coordinate are never excluded here; the country fallback
    pass deals with them later. No zone means nothing is excluded.
    """
    if zone is None or photo.coordinate is None:
        return False
    return haversine_m(zone.center, photo.coordinate) <= zone.radius_m


def split_by_zone(
    zone: Optional[NeighborhoodZone], photos: Iterable[PhotoRecord]
) -> Tuple[List[PhotoRecord], List[PhotoRecord]]:
    """Partition photos into (qualifying, excluded), preserving input order."""
    qualifying: List[PhotoRecord] = []
    excluded: List[PhotoRecord] = []
    for photo in photos:
        if is_excluded(zone, photo):
            excluded.append(photo)
        else:
            qualifying.append(photo)
    return qualifying, excluded
