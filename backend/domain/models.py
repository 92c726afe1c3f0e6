"""
Core domain models for the trip scanner.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional
import uuid

from domain.errors import InvalidRangeError

# Fixed namespace so trip ids derived from photo ids are stable across runs.
TRIP_ID_NAMESPACE = uuid.UUID("6f1c2a8e-3b7d-4c55-9a1e-2d4b8f0c7e13")


class ScanStatus(str, Enum):
    """Outcome of a scan at the photo-source boundary."""
    OK = "ok"
    NO_PHOTOS = "no_photos"  # Source returned nothing for the range
    NO_ACCESS = "no_access"  # Source refused access


class ScanStage(str, Enum):
    """Coarse progress of a scan, in pipeline order."""
    PENDING = "pending"
    FETCHING = "fetching"
    BUCKETIZING = "bucketizing"
    RESOLVING_COUNTRIES = "resolving_countries"
    SEGMENTING = "segmenting"
    CLUSTERING_STOPS = "clustering_stops"
    ASSEMBLING = "assembling"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class SegmentPass(str, Enum):
    """Which rule of the trip segmenter produced a decision."""
    FIRST_DAY = "first_day"
    BRIDGE = "bridge"
    NEIGHBORHOOD = "neighborhood_pass"
    COUNTRY_FALLBACK = "country_fallback_pass"
    NO_SIGNAL = "no_signal"
    TRIP_CENTROID_EXCLUSION = "trip_centroid_exclusion"
    SMOOTHING = "smoothing"


class SegmentDecision(str, Enum):
    START = "start"
    CONTINUE = "continue"
    SPLIT = "split"
    HOLD = "hold"
    CLOSE = "close"
    MERGE = "merge"


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""
    lat: float
    lon: float


@dataclass(frozen=True)
class PhotoRecord:
    """
    One photo's metadata as seen by the engine.

    `timestamp` is the capture instant in device-local time. Naive datetimes
    are taken as already local. `country_hint` is an optional country name a
    photo source may carry from sidecar metadata when GPS is missing.
    """
    id: str
    timestamp: datetime
    coordinate: Optional[Coordinate] = None
    country_hint: Optional[str] = None


@dataclass(frozen=True)
class NeighborhoodZone:
    """User-configured home circle whose photos do not count as travel."""
    center: Coordinate
    radius_m: float
    display_name: Optional[str] = None


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval [start, end) of capture instants."""
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts < self.end

    @classmethod
    def last_days(cls, now: datetime, days: int) -> "TimeRange":
        """Default scan window: the `days` days up to and including `now`."""
        # End is exclusive, nudge it past `now` so photos taken right now count.
        return cls(start=now - timedelta(days=days), end=now + timedelta(microseconds=1))

    @classmethod
    def for_months(cls, year: int, start_month: int, end_month: int) -> "TimeRange":
        """
        "Find more trips" window from the first day of `start_month` to the
        first day after `end_month`, within one year.
        """
        if not (1 <= start_month <= end_month <= 12):
            raise InvalidRangeError(
                f"Invalid month range {start_month}..{end_month} for {year}"
            )
        start = datetime(year, start_month, 1)
        if end_month == 12:
            end = datetime(year + 1, 1, 1)
        else:
            end = datetime(year, end_month + 1, 1)
        return cls(start=start, end=end)


@dataclass(frozen=True)
class ScanConfig:
    """Tunable thresholds for trip segmentation and stop clustering."""
    max_trip_radius_km: float = 150.0
    max_gap_days: int = 2
    stop_radius_m: float = 300.0
    window_days: int = 90
    # Opt-in rules, off by default.
    trip_exclusion_radius_km: Optional[float] = None
    smooth_single_day_trips: bool = False
    smoothing_max_km: float = 160.0
    geocode_timeout_s: float = 5.0
    geocode_max_workers: int = 4


@dataclass
class DayBucket:
    """
    All photos of one local calendar day.

    `representative_country` starts unresolved and is filled in lazily by the
    country resolver, only for days the country fallback pass needs.
    """
    date: date
    qualifying_photos: List[PhotoRecord] = field(default_factory=list)
    excluded_photos: List[PhotoRecord] = field(default_factory=list)
    representative_coordinate: Optional[Coordinate] = None
    representative_country: Optional[str] = None
    country_resolved: bool = False

    @property
    def is_bridge(self) -> bool:
        """A day with no qualifying photos only spaces trips apart."""
        return not self.qualifying_photos

    def gap_days_since(self, other: "DayBucket") -> int:
        """Calendar days from `other` to this day (1 when consecutive)."""
        return (self.date - other.date).days


@dataclass(frozen=True)
class ReasonLogEntry:
    """Why one day merged into, split from, or held open a trip."""
    day_date: date
    pass_name: SegmentPass
    decision: SegmentDecision
    detail: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.pass_name.value}: {self.decision.value}"


@dataclass
class TripCandidate:
    """A maximal run of days that belong together. Bridge days are never members."""
    days: List[DayBucket] = field(default_factory=list)
    reason_log: List[ReasonLogEntry] = field(default_factory=list)


@dataclass(frozen=True)
class PlaceStop:
    """A spatial cluster of same-day photos, ordered within its day."""
    order_index: int
    photos: tuple
    representative_coordinate: Optional[Coordinate] = None

    @property
    def photo_ids(self) -> List[str]:
        return [p.id for p in self.photos]


@dataclass(frozen=True)
class TripDay:
    day_index: int
    date: date
    place_stops: tuple
    country: Optional[str] = None

    @property
    def photo_ids(self) -> List[str]:
        return [pid for stop in self.place_stops for pid in stop.photo_ids]


@dataclass(frozen=True)
class TripDraft:
    """
    Final assembled trip, immutable once produced.

    Curation (titles, covers, photo selection) happens on copies outside the
    scanner.
    """
    id: str
    days: tuple
    reason_log: tuple = ()

    @staticmethod
    def derive_id(photo_ids: Iterable[str]) -> str:
        """Stable id from the trip's photo ids so re-scans give the same id."""
        return str(uuid.uuid5(TRIP_ID_NAMESPACE, "\n".join(photo_ids)))

    @property
    def photo_ids(self) -> List[str]:
        return [pid for day in self.days for pid in day.photo_ids]

    @property
    def photo_count(self) -> int:
        return len(self.photo_ids)

    @property
    def start_date(self) -> date:
        return self.days[0].date

    @property
    def end_date(self) -> date:
        return self.days[-1].date


@dataclass
class ScanResult:
    """Output of one scan plus the counts the app shows for empty states."""
    status: ScanStatus
    time_range: TimeRange
    trips: List[TripDraft] = field(default_factory=list)
    total_fetched: int = 0
    claimed_skipped: int = 0
    excluded_local: int = 0
    qualifying: int = 0
    # Every segmentation decision in day order, bridges outside trips included
    reason_log: List[ReasonLogEntry] = field(default_factory=list)
