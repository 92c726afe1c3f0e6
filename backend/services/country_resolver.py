"""
Lazy per-day country resolution for the country fallback pass.

Countries are looked up only for days the fallback pass may actually compare,
memoized on the day bucket, and cached by ~1 km grid cell so nearby days share
one geocoder call. Lookup failures and timeouts leave the country absent.
"""
from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Callable, Dict, List, Optional, Sequence

from domain.models import Coordinate, DayBucket
from services.geo import coordinate_bucket_key
from services.geocode_cache import BoundedCountryCache

logger = logging.getLogger(__name__)


def _hint_country(day: DayBucket) -> Optional[str]:
    """Most common country hint among the day's photos, ties alphabetical."""
    counts = Counter(p.country_hint for p in day.qualifying_photos if p.country_hint)
    if not counts:
        return None
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]


def days_needing_country(days: Sequence[DayBucket], max_gap_days: int) -> List[DayBucket]:
    """
    Days the fallback pass can ask about: every non-bridge day without a
    representative coordinate, plus the previous non-bridge day when the gap
    between them is within tolerance. Over-approximates, never misses.
    """
    needed: List[DayBucket] = []
    seen: set = set()
    prev: Optional[DayBucket] = None
    for day in days:
        if day.is_bridge:
            continue
        if prev is not None and day.gap_days_since(prev) <= max_gap_days:
            if day.representative_coordinate is None or prev.representative_coordinate is None:
                for d in (prev, day):
                    if d.date not in seen:
                        seen.add(d.date)
                        needed.append(d)
        prev = day
    return needed


class DayCountryResolver:
    def __init__(
        self,
        geocoder=None,
        cache=None,
        timeout_s: float = 5.0,
        max_workers: int = 4,
    ):
        self.geocoder = geocoder
        self.cache = cache if cache is not None else BoundedCountryCache()
        self.timeout_s = timeout_s
        self.max_workers = max_workers

    def country_of(self, day: DayBucket) -> Optional[str]:
        """Resolve (once) and return the day's representative country."""
        if not day.country_resolved:
            coord = day.representative_coordinate
            country = self._lookup_blocking(coord) if coord is not None else None
            self._settle(day, country)
        return day.representative_country

    def prefetch(
        self,
        days: Sequence[DayBucket],
        max_gap_days: int,
        cancel_check: Optional[Callable[[], None]] = None,
    ) -> None:
        """Fan out the lookups the fallback pass may need, then fan the answers in."""
        pending = [d for d in days_needing_country(days, max_gap_days) if not d.country_resolved]
        if not pending:
            return

        futures: Dict[str, Future] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="geocode")
        try:
            for day in pending:
                coord = day.representative_coordinate
                if coord is None:
                    continue
                key = coordinate_bucket_key(coord)
                hit, _ = self.cache.get(key)
                if hit or key in futures or self.geocoder is None:
                    continue
                futures[key] = executor.submit(self._fetch, coord)

            for day in pending:
                if cancel_check is not None:
                    cancel_check()
                coord = day.representative_coordinate
                country = None
                if coord is not None:
                    key = coordinate_bucket_key(coord)
                    future = futures.get(key)
                    if future is not None:
                        country = self._collect(key, coord, future)
                    else:
                        _, country = self.cache.get(key)
                self._settle(day, country)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _settle(self, day: DayBucket, country: Optional[str]) -> None:
        day.representative_country = country or _hint_country(day)
        day.country_resolved = True

    def _lookup_blocking(self, coord: Coordinate) -> Optional[str]:
        key = coordinate_bucket_key(coord)
        hit, country = self.cache.get(key)
        if hit:
            return country
        if self.geocoder is None:
            return None
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="geocode")
        try:
            return self._collect(key, coord, executor.submit(self._fetch, coord))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _fetch(self, coord: Coordinate) -> Optional[str]:
        return self.geocoder.lookup_country(coord)

    def _collect(self, key: str, coord: Coordinate, future: Future) -> Optional[str]:
        """Wait for one lookup within the timeout; failures become None."""
        try:
            country = future.result(timeout=self.timeout_s)
        except FutureTimeout:
            logger.warning(
                "Country lookup timed out after %.1fs for %s,%s", self.timeout_s, coord.lat, coord.lon
            )
            return None
        except Exception as exc:
            logger.warning("Country lookup failed for %s,%s: %s", coord.lat, coord.lon, exc)
            return None
        self.cache.put(key, country)
        return country
