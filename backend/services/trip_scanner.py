"""
Scan orchestrator: photo library -> trip drafts.

Pipeline stages:
1. Fetch photos for the requested range and drop already-claimed ones
2. Bucketize into local days, splitting off home-zone photos
3. Prefetch the countries the fallback pass may need (parallel lookups)
4. Segment days into trips
5. Cluster each trip day into place stops
6. Assemble immutable TripDrafts

A scan is a function of (photos, zone, claimed set, range). The zone and the
claimed set are snapshotted at scan start and the claimed store is never
written here; accepting a draft is the caller's business.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, tzinfo
from typing import FrozenSet, Iterable, List, Optional

from domain.errors import InvalidRangeError, PhotoAccessDeniedError, ScanCancelledError
from domain.models import (
    NeighborhoodZone,
    PhotoRecord,
    ScanConfig,
    ScanResult,
    ScanStage,
    ScanStatus,
    TimeRange,
    TripCandidate,
    TripDay,
    TripDraft,
)
from services.country_resolver import DayCountryResolver
from services.day_bucketizer import bucketize_photos, local_datetime
from services.place_stops import cluster_place_stops
from services.trip_segmenter import segment_days

logger = logging.getLogger(__name__)

_UNSET = object()


def validate_range(time_range: TimeRange) -> None:
    """Reject empty or reversed ranges, and ranges mixing aware and naive ends."""
    if (time_range.start.tzinfo is None) != (time_range.end.tzinfo is None):
        raise InvalidRangeError("Scan range mixes timezone-aware and naive datetimes")
    if time_range.end <= time_range.start:
        raise InvalidRangeError(
            f"Scan range end {time_range.end.isoformat()} is not after start {time_range.start.isoformat()}"
        )


class ScanHandle:
    """Caller's view of one scan: coarse progress, cancellation, result."""

    def __init__(self) -> None:
        self._cancel = threading.Event()
        self._future: Optional[Future] = None
        self.stage = ScanStage.PENDING

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel.is_set():
            raise ScanCancelledError("scan cancelled")

    def advance(self, stage: ScanStage) -> None:
        self.raise_if_cancelled()
        logger.debug("scan stage -> %s", stage.value)
        self.stage = stage

    def done(self) -> bool:
        if self._future is None:
            return self.stage in (ScanStage.DONE, ScanStage.CANCELLED, ScanStage.FAILED)
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Optional[ScanResult]:
        """Block for the result; None when the scan was cancelled."""
        if self._future is None:
            raise RuntimeError("scan handle is not attached to a running scan")
        return self._future.result(timeout=timeout)


class TripScanner:
    """
    Wires the collaborators together and runs one scan at a time on the
    calling thread. See ScanRunner for the background variant.
    """

    def __init__(
        self,
        photo_source,
        geocoder=None,
        neighborhood=None,
        claimed_store=None,
        config: Optional[ScanConfig] = None,
        geocode_cache=None,
        tz: Optional[tzinfo] = None,
        debug_reasons: bool = False,
    ):
        self.photo_source = photo_source
        self.geocoder = geocoder
        self.neighborhood = neighborhood
        self.claimed_store = claimed_store
        self.config = config or ScanConfig()
        self.geocode_cache = geocode_cache
        self.tz = tz
        self.debug_reasons = debug_reasons

    def default_range(self, now: Optional[datetime] = None) -> TimeRange:
        return TimeRange.last_days(now or datetime.now(), self.config.window_days)

    def scan(
        self,
        time_range: TimeRange,
        zone=_UNSET,
        claimed_ids: Optional[Iterable[str]] = None,
        handle: Optional[ScanHandle] = None,
    ) -> ScanResult:
        """
        Run the full pipeline over `time_range`.

        Raises InvalidRangeError up front and ScanCancelledError if `handle`
        is cancelled mid-way; never returns a partial result.
        """
        validate_range(time_range)
        handle = handle or ScanHandle()
        handle.raise_if_cancelled()

        if zone is _UNSET:
            zone = self.neighborhood.current_zone() if self.neighborhood is not None else None
        if claimed_ids is None:
            claimed_ids = self.claimed_store.claimed_identifiers() if self.claimed_store is not None else ()
        claimed: FrozenSet[str] = frozenset(claimed_ids)

        handle.advance(ScanStage.FETCHING)
        try:
            fetched = self.photo_source.fetch(time_range)
        except PhotoAccessDeniedError as exc:
            logger.warning("Photo library unavailable: %s", exc)
            handle.advance(ScanStage.DONE)
            return ScanResult(status=ScanStatus.NO_ACCESS, time_range=time_range)

        in_range = self._clamp(fetched, time_range)
        if not in_range:
            logger.info("No photos between %s and %s", time_range.start, time_range.end)
            handle.advance(ScanStage.DONE)
            return ScanResult(status=ScanStatus.NO_PHOTOS, time_range=time_range)
        unclaimed = [p for p in in_range if p.id not in claimed]

        handle.advance(ScanStage.BUCKETIZING)
        days = bucketize_photos(unclaimed, zone, self.tz)

        handle.advance(ScanStage.RESOLVING_COUNTRIES)
        resolver = DayCountryResolver(
            geocoder=self.geocoder,
            cache=self.geocode_cache,
            timeout_s=self.config.geocode_timeout_s,
            max_workers=self.config.geocode_max_workers,
        )
        resolver.prefetch(days, self.config.max_gap_days, cancel_check=handle.raise_if_cancelled)

        handle.advance(ScanStage.SEGMENTING)
        segmentation = segment_days(
            days, self.config, resolver.country_of, cancel_check=handle.raise_if_cancelled
        )
        log = logger.info if self.debug_reasons else logger.debug
        for entry in segmentation.reason_log:
            log("[TripClustering] %s %s (%s)", entry.day_date.isoformat(), entry.label, entry.detail or "")

        handle.advance(ScanStage.CLUSTERING_STOPS)
        drafts = [self._assemble(trip, handle) for trip in segmentation.trips]

        handle.advance(ScanStage.ASSEMBLING)
        result = ScanResult(
            status=ScanStatus.OK,
            time_range=time_range,
            trips=drafts,
            total_fetched=len(in_range),
            claimed_skipped=len(in_range) - len(unclaimed),
            excluded_local=sum(len(d.excluded_photos) for d in days),
            qualifying=sum(len(d.qualifying_photos) for d in days),
            reason_log=list(segmentation.reason_log),
        )
        handle.advance(ScanStage.DONE)
        logger.info(
            "Scan %s..%s: fetched=%s claimed=%s excluded_local=%s qualifying=%s trips=%s",
            time_range.start.isoformat(),
            time_range.end.isoformat(),
            result.total_fetched,
            result.claimed_skipped,
            result.excluded_local,
            result.qualifying,
            len(drafts),
        )
        return result

    def _clamp(self, photos: Iterable[PhotoRecord], time_range: TimeRange) -> List[PhotoRecord]:
        """Keep photos inside the range, comparing aware and naive times sensibly."""
        naive_range = time_range.start.tzinfo is None
        kept: List[PhotoRecord] = []
        for photo in photos:
            ts = photo.timestamp
            if naive_range:
                ts = local_datetime(ts, self.tz)
            elif ts.tzinfo is None:
                ts = ts.replace(tzinfo=self.tz) if self.tz else ts.astimezone()
            if time_range.contains(ts):
                kept.append(photo)
        return kept

    def _assemble(self, trip: TripCandidate, handle: ScanHandle) -> TripDraft:
        trip_days: List[TripDay] = []
        for idx, day in enumerate(trip.days):
            handle.raise_if_cancelled()
            stops = cluster_place_stops(day.qualifying_photos, self.config.stop_radius_m)
            trip_days.append(
                TripDay(
                    day_index=idx + 1,
                    date=day.date,
                    place_stops=tuple(stops),
                    country=day.representative_country if day.country_resolved else None,
                )
            )
        photo_ids = [pid for d in trip_days for pid in d.photo_ids]
        return TripDraft(
            id=TripDraft.derive_id(photo_ids),
            days=tuple(trip_days),
            reason_log=tuple(trip.reason_log),
        )


class ScanRunner:
    """
    Runs scans off the caller's thread, one at a time.

    Submitting a new scan cancels the in-flight one; the single worker then
    picks the new scan up once the old one has stopped.
    """

    def __init__(self, scanner: TripScanner):
        self.scanner = scanner
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="trip-scan")
        self._lock = threading.Lock()
        self._current: Optional[ScanHandle] = None

    def submit(
        self,
        time_range: TimeRange,
        zone=_UNSET,
        claimed_ids: Optional[Iterable[str]] = None,
    ) -> ScanHandle:
        validate_range(time_range)
        handle = ScanHandle()
        with self._lock:
            if self._current is not None and not self._current.done():
                logger.info("Cancelling in-flight scan for a new request")
                self._current.cancel()
            handle._future = self._executor.submit(self._run, handle, time_range, zone, claimed_ids)
            self._current = handle
        return handle

    def _run(self, handle: ScanHandle, time_range: TimeRange, zone, claimed_ids) -> Optional[ScanResult]:
        try:
            return self.scanner.scan(time_range, zone=zone, claimed_ids=claimed_ids, handle=handle)
        except ScanCancelledError:
            handle.stage = ScanStage.CANCELLED
            logger.info("Scan %s..%s cancelled", time_range.start, time_range.end)
            return None
        except Exception:
            handle.stage = ScanStage.FAILED
            logger.exception("Scan %s..%s failed", time_range.start, time_range.end)
            raise

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._current is not None:
                self._current.cancel()
        self._executor.shutdown(wait=wait)
