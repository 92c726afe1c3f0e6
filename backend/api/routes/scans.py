"""
Scan API routes.

Starts background trip scans, reports progress and results, and records the
photos of drafts the user accepts so the next scan skips them.
"""
import logging
import uuid
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date as DateType, datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from api.database import scans_db
from db import SessionLocal
from domain.errors import InvalidRangeError
from domain.models import ReasonLogEntry, ScanResult, ScanStage, TimeRange, TripDraft
from repositories import ClaimedPhotosRepository, SessionClaimedStore, SessionNeighborhoodConfig
from services.geocode_cache import BoundedCountryCache, SqliteCountryCache
from services.geocoding import NominatimGeocoder
from services.photo_source import DirectoryPhotoSource
from services.trip_scanner import ScanRunner, TripScanner, validate_range
from settings import settings

router = APIRouter()
claimed_repo = ClaimedPhotosRepository()
logger = logging.getLogger(__name__)

_runner: Optional[ScanRunner] = None


def build_scanner() -> TripScanner:
    """Scanner wired to the configured library, database and geocoder."""
    config = settings.scan_config()
    geocoder = None
    memory = BoundedCountryCache(settings.GEOCODE_CACHE_MAX_ENTRIES)
    cache = memory
    if settings.COUNTRY_LOOKUP_ENABLED:
        geocoder = NominatimGeocoder(timeout_s=config.geocode_timeout_s)
        cache = SqliteCountryCache(settings.GEOCODE_CACHE_PATH, memory=memory)
    return TripScanner(
        photo_source=DirectoryPhotoSource(settings.PHOTO_LIBRARY_ROOT),
        geocoder=geocoder,
        neighborhood=SessionNeighborhoodConfig(SessionLocal),
        claimed_store=SessionClaimedStore(SessionLocal, claimed_repo),
        config=config,
        geocode_cache=cache,
        tz=settings.local_tz(),
        debug_reasons=settings.TRIP_CLUSTERING_DEBUG,
    )


def get_runner() -> ScanRunner:
    global _runner
    if _runner is None:
        _runner = ScanRunner(build_scanner())
    return _runner


class ScanRequest(BaseModel):
    """Either an explicit start/end, a year with a month span, or nothing (default window)."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    year: Optional[int] = Field(None, ge=1, le=9998)
    start_month: Optional[int] = None
    end_month: Optional[int] = None


class ScanSubmittedResponse(BaseModel):
    scan_id: str
    stage: str
    start: datetime
    end: datetime


class PlaceStopResponse(BaseModel):
    order_index: int
    photo_ids: List[str]
    lat: Optional[float] = None
    lon: Optional[float] = None


class TripDayResponse(BaseModel):
    day_index: int
    date: DateType
    country: Optional[str] = None
    place_stops: List[PlaceStopResponse]


class ReasonLogEntryResponse(BaseModel):
    day_date: DateType
    pass_name: str
    decision: str
    detail: Optional[str] = None


class TripDraftResponse(BaseModel):
    id: str
    start_date: DateType
    end_date: DateType
    photo_count: int
    days: List[TripDayResponse]
    reason_log: List[ReasonLogEntryResponse]


class ScanResultResponse(BaseModel):
    status: str
    start: datetime
    end: datetime
    total_fetched: int
    claimed_skipped: int
    excluded_local: int
    qualifying: int
    trips: List[TripDraftResponse]
    reason_log: List[ReasonLogEntryResponse]


class ScanStatusResponse(BaseModel):
    scan_id: str
    stage: str
    result: Optional[ScanResultResponse] = None
    error: Optional[str] = None


class AcceptTripResponse(BaseModel):
    trip_id: str
    claimed_photo_ids: List[str]


def _resolve_range(req: ScanRequest) -> TimeRange:
    if req.start is not None or req.end is not None:
        if req.start is None or req.end is None:
            raise InvalidRangeError("Both start and end are required for an explicit range")
        time_range = TimeRange(start=req.start, end=req.end)
    elif req.year is not None:
        time_range = TimeRange.for_months(req.year, req.start_month or 1, req.end_month or 12)
    elif req.start_month is not None or req.end_month is not None:
        raise InvalidRangeError("A month range needs a year")
    else:
        time_range = get_runner().scanner.default_range()
    validate_range(time_range)
    return time_range


def entry_to_response(entry: ReasonLogEntry) -> ReasonLogEntryResponse:
    return ReasonLogEntryResponse(
        day_date=entry.day_date,
        pass_name=entry.pass_name.value,
        decision=entry.decision.value,
        detail=entry.detail,
    )


def trip_to_response(trip: TripDraft) -> TripDraftResponse:
    """Convert a domain TripDraft to its API response."""
    return TripDraftResponse(
        id=trip.id,
        start_date=trip.start_date,
        end_date=trip.end_date,
        photo_count=trip.photo_count,
        days=[
            TripDayResponse(
                day_index=day.day_index,
                date=day.date,
                country=day.country,
                place_stops=[
                    PlaceStopResponse(
                        order_index=stop.order_index,
                        photo_ids=stop.photo_ids,
                        lat=stop.representative_coordinate.lat if stop.representative_coordinate else None,
                        lon=stop.representative_coordinate.lon if stop.representative_coordinate else None,
                    )
                    for stop in day.place_stops
                ],
            )
            for day in trip.days
        ],
        reason_log=[entry_to_response(e) for e in trip.reason_log],
    )


def result_to_response(result: ScanResult) -> ScanResultResponse:
    return ScanResultResponse(
        status=result.status.value,
        start=result.time_range.start,
        end=result.time_range.end,
        total_fetched=result.total_fetched,
        claimed_skipped=result.claimed_skipped,
        excluded_local=result.excluded_local,
        qualifying=result.qualifying,
        trips=[trip_to_response(t) for t in result.trips],
        reason_log=[entry_to_response(e) for e in result.reason_log],
    )


def _prune_finished() -> None:
    """Forget scans that are finished or cancelled before a new one is registered."""
    for scan_id in [k for k, h in scans_db.items() if h.done() or h.cancelled]:
        del scans_db[scan_id]


def _get_handle(scan_id: str):
    handle = scans_db.get(scan_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Scan not found")
    return handle


@router.post("", response_model=ScanSubmittedResponse, status_code=202)
async def start_scan(req: Optional[ScanRequest] = None):
    """
    Start a scan in the background. Any scan still running is cancelled.
    An empty body scans the default window (last 90 days).
    """
    req = req or ScanRequest()
    try:
        time_range = _resolve_range(req)
        handle = get_runner().submit(time_range)
    except InvalidRangeError as e:
        raise HTTPException(status_code=422, detail=str(e))

    _prune_finished()
    scan_id = str(uuid.uuid4())
    scans_db[scan_id] = handle
    return ScanSubmittedResponse(
        scan_id=scan_id,
        stage=handle.stage.value,
        start=time_range.start,
        end=time_range.end,
    )


@router.get("/{scan_id}", response_model=ScanStatusResponse)
def get_scan(scan_id: str, wait: float = 0.0):
    """
    Report progress, and the result once the scan is done. `wait` blocks up
    to that many seconds for completion.
    """
    handle = _get_handle(scan_id)
    if wait > 0 and not handle.done():
        try:
            handle.result(timeout=wait)
        except FutureTimeoutError:
            pass
        except Exception:
            logger.warning("Scan %s failed while waiting", scan_id)

    if not handle.done():
        return ScanStatusResponse(scan_id=scan_id, stage=handle.stage.value)

    try:
        result = handle.result(timeout=0)
    except Exception as e:
        return ScanStatusResponse(scan_id=scan_id, stage=ScanStage.FAILED.value, error=str(e))
    if result is None:
        return ScanStatusResponse(scan_id=scan_id, stage=ScanStage.CANCELLED.value)
    return ScanStatusResponse(
        scan_id=scan_id,
        stage=handle.stage.value,
        result=result_to_response(result),
    )


@router.delete("/{scan_id}", response_model=ScanStatusResponse)
async def cancel_scan(scan_id: str):
    """Cancel a running scan and forget it. Partial results are discarded."""
    handle = _get_handle(scan_id)
    handle.cancel()
    scans_db.pop(scan_id, None)
    return ScanStatusResponse(scan_id=scan_id, stage=handle.stage.value)


@router.post("/{scan_id}/trips/{trip_id}/accept", response_model=AcceptTripResponse)
async def accept_trip(scan_id: str, trip_id: str):
    """Accept a draft: its photos become claimed and later scans skip them."""
    handle = _get_handle(scan_id)
    if not handle.done():
        raise HTTPException(status_code=409, detail="Scan still running")
    try:
        result = handle.result(timeout=0)
    except Exception:
        raise HTTPException(status_code=409, detail="Scan failed")
    if result is None:
        raise HTTPException(status_code=409, detail="Scan was cancelled")

    trip = next((t for t in result.trips if t.id == trip_id), None)
    if trip is None:
        raise HTTPException(status_code=404, detail="Trip not found")

    with SessionLocal() as session:
        claimed = claimed_repo.claim_trip(session, trip)
    logger.info("Accepted trip %s, claimed %s photos", trip_id, len(claimed))
    return AcceptTripResponse(trip_id=trip_id, claimed_photo_ids=claimed)
