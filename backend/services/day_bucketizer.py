"""
Day bucketizer: groups photos into local calendar days.

Each bucket keeps the photos that survive the neighborhood filter (the ones
that can make a trip) apart from the excluded ones, and carries the day's
representative coordinate for the trip segmenter.
"""
from collections import defaultdict
from datetime import date, datetime, tzinfo
from typing import Dict, Iterable, List, Optional

from domain.models import Coordinate, DayBucket, NeighborhoodZone, PhotoRecord
from services.neighborhood_filter import split_by_zone


def local_datetime(ts: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """
    Wall-clock time of a capture instant in the device's timezone, as a naive
    datetime. Naive inputs are already local and pass through.
    """
    if ts.tzinfo is None:
        return ts
    if tz is not None:
        return ts.astimezone(tz).replace(tzinfo=None)
    return ts.astimezone().replace(tzinfo=None)


def local_date(ts: datetime, tz: Optional[tzinfo] = None) -> date:
    return local_datetime(ts, tz).date()


def representative_coordinate(
    photos: List[PhotoRecord], tz: Optional[tzinfo] = None
) -> Optional[Coordinate]:
    """
    Coordinate of the located photo closest to the day's temporal midpoint.

    `photos` must be sorted by time. Ties go to the earlier photo.
    """
    if not photos:
        return None
    first = local_datetime(photos[0].timestamp, tz)
    last = local_datetime(photos[-1].timestamp, tz)
    midpoint = first + (last - first) / 2

    best: Optional[PhotoRecord] = None
    best_delta = None
    for photo in photos:
        if photo.coordinate is None:
            continue
        delta = abs(local_datetime(photo.timestamp, tz) - midpoint)
        if best_delta is None or delta < best_delta:
            best = photo
            best_delta = delta
    return best.coordinate if best else None


def bucketize_photos(
    photos: Iterable[PhotoRecord],
    zone: Optional[NeighborhoodZone] = None,
    tz: Optional[tzinfo] = None,
) -> List[DayBucket]:
    """
    Group photos by local calendar date, ascending.

    Only days with at least one photo get a bucket. A day whose photos are all
    inside the zone still gets one (with no qualifying photos) so the segmenter
    can treat it as a bridge day.
    """
    grouped: Dict[date, List[PhotoRecord]] = defaultdict(list)
    for photo in photos:
        grouped[local_date(photo.timestamp, tz)].append(photo)

    buckets: List[DayBucket] = []
    for day in sorted(grouped):
        # Sort within day by local time; id breaks ties so the order is total.
        group = sorted(
            grouped[day], key=lambda p: (local_datetime(p.timestamp, tz), p.id)
        )
        qualifying, excluded = split_by_zone(zone, group)
        buckets.append(
            DayBucket(
                date=day,
                qualifying_photos=qualifying,
                excluded_photos=excluded,
                representative_coordinate=representative_coordinate(qualifying, tz),
            )
        )
    return buckets
