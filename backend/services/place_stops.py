"""
Place stop clustering for one trip day.

A single chronological sweep with a fixed radius: each located photo either
joins the current stop (within `stop_radius_m` of its centroid) or opens a new
one. Photos without a location stay with the stop they were taken during.
"""
from typing import List, Optional, Sequence

from domain.models import Coordinate, PhotoRecord, PlaceStop
from services.geo import compute_centroid, haversine_m


class _StopAccumulator:
    def __init__(self, first: PhotoRecord):
        self.photos: List[PhotoRecord] = [first]
        self.located: List[Coordinate] = [first.coordinate] if first.coordinate else []
        self.center: Optional[Coordinate] = first.coordinate

    def accepts(self, photo: PhotoRecord, radius_m: float) -> bool:
        if photo.coordinate is None:
            return True
        if self.center is None:
            # Seeded by an unlocated photo: the first located one defines the place.
            return True
        return haversine_m(self.center, photo.coordinate) <= radius_m

    def add(self, photo: PhotoRecord) -> None:
        self.photos.append(photo)
        if photo.coordinate is not None:
            self.located.append(photo.coordinate)
            self.center = compute_centroid(self.located)

    def freeze(self, order_index: int) -> PlaceStop:
        return PlaceStop(
            order_index=order_index,
            photos=tuple(self.photos),
            representative_coordinate=self.center,
        )


def cluster_place_stops(photos: Sequence[PhotoRecord], stop_radius_m: float = 300.0) -> List[PlaceStop]:
    """
    Partition a day's qualifying photos (sorted by time) into ordered stops.

    Deterministic for a given input order; feeding the stops' photos back in
    the same order reproduces the same stops.
    """
    if not photos:
        return []

    stops: List[PlaceStop] = []
    current = _StopAccumulator(photos[0])
    for photo in photos[1:]:
        if current.accepts(photo, stop_radius_m):
            current.add(photo)
        else:
            stops.append(current.freeze(len(stops)))
            current = _StopAccumulator(photo)
    stops.append(current.freeze(len(stops)))
    return stops
