"""
Trip segmenter: partitions chronological day buckets into trip candidates.

The walk is an explicit two-state machine. `step` is a pure transition

    (state, day) -> (state, closed trip or None, reason entry)

and `segment_days` drives it over the whole sequence. Country lookups are
injected as `country_of(day)` so the machine stays free of I/O.

Per day, in order:
- a bridge day (nothing qualifying) never joins a trip; it holds an open trip
  while the gap tolerance allows, and closes it otherwise;
- with no open trip the day starts one;
- otherwise the day is compared with the open trip's last day: first by
  distance between representative coordinates (neighborhood pass), and only
  when a coordinate is missing by resolved country (country fallback pass).
  No evidence means split.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple, Union

from domain.models import (
    DayBucket,
    ReasonLogEntry,
    ScanConfig,
    SegmentDecision,
    SegmentPass,
    TripCandidate,
)
from services.geo import compute_centroid, haversine_km

CountryOf = Callable[[DayBucket], Optional[str]]


@dataclass(frozen=True)
class NoOpenTrip:
    pass


@dataclass(frozen=True)
class OpenTrip:
    days: Tuple[DayBucket, ...]
    reasons: Tuple[ReasonLogEntry, ...]

    @property
    def last_day(self) -> DayBucket:
        return self.days[-1]

    def close(self) -> TripCandidate:
        return TripCandidate(days=list(self.days), reason_log=list(self.reasons))


SegmenterState = Union[NoOpenTrip, OpenTrip]


@dataclass
class SegmentationResult:
    trips: List[TripCandidate] = field(default_factory=list)
    reason_log: List[ReasonLogEntry] = field(default_factory=list)


def _same_country(a: str, b: str) -> bool:
    return a.strip().casefold() == b.strip().casefold()


def decide(
    state: OpenTrip,
    day: DayBucket,
    config: ScanConfig,
    country_of: CountryOf,
) -> Tuple[SegmentPass, SegmentDecision, str]:
    """Continue-or-split verdict for a non-bridge day against an open trip."""
    prev = state.last_day
    gap = day.gap_days_since(prev)
    here = day.representative_coordinate
    there = prev.representative_coordinate

    if here is not None and there is not None:
        if config.trip_exclusion_radius_km is not None:
            centroid = compute_centroid(
                d.representative_coordinate for d in state.days if d.representative_coordinate
            )
            from_centroid = haversine_km(centroid, here)
            if from_centroid > config.trip_exclusion_radius_km:
                return (
                    SegmentPass.TRIP_CENTROID_EXCLUSION,
                    SegmentDecision.SPLIT,
                    f"{from_centroid:.1f} km from trip centroid",
                )
        distance = haversine_km(there, here)
        detail = f"{distance:.1f} km, gap {gap}d"
        if distance <= config.max_trip_radius_km and gap <= config.max_gap_days:
            return SegmentPass.NEIGHBORHOOD, SegmentDecision.CONTINUE, detail
        return SegmentPass.NEIGHBORHOOD, SegmentDecision.SPLIT, detail

    # Checked before any lookup so far-apart days never cost a geocoder call.
    if gap > config.max_gap_days:
        return SegmentPass.COUNTRY_FALLBACK, SegmentDecision.SPLIT, f"gap {gap}d"

    prev_country = country_of(prev)
    day_country = country_of(day)
    if not prev_country or not day_country:
        return SegmentPass.NO_SIGNAL, SegmentDecision.SPLIT, "country unresolved"
    detail = f"{prev_country} -> {day_country}, gap {gap}d"
    if _same_country(prev_country, day_country):
        return SegmentPass.COUNTRY_FALLBACK, SegmentDecision.CONTINUE, detail
    return SegmentPass.COUNTRY_FALLBACK, SegmentDecision.SPLIT, detail


def step(
    state: SegmenterState,
    day: DayBucket,
    config: ScanConfig,
    country_of: CountryOf,
) -> Tuple[SegmenterState, Optional[TripCandidate], ReasonLogEntry]:
    """Advance the machine by one day."""
    if day.is_bridge:
        if isinstance(state, OpenTrip):
            gap = day.gap_days_since(state.last_day)
            if gap <= config.max_gap_days:
                entry = ReasonLogEntry(day.date, SegmentPass.BRIDGE, SegmentDecision.HOLD, f"gap {gap}d")
                return OpenTrip(state.days, state.reasons + (entry,)), None, entry
            entry = ReasonLogEntry(day.date, SegmentPass.BRIDGE, SegmentDecision.CLOSE, f"gap {gap}d")
            closed = TripCandidate(days=list(state.days), reason_log=list(state.reasons + (entry,)))
            return NoOpenTrip(), closed, entry
        entry = ReasonLogEntry(day.date, SegmentPass.BRIDGE, SegmentDecision.HOLD, "no open trip")
        return state, None, entry

    if isinstance(state, NoOpenTrip):
        entry = ReasonLogEntry(day.date, SegmentPass.FIRST_DAY, SegmentDecision.START)
        return OpenTrip((day,), (entry,)), None, entry

    pass_name, decision, detail = decide(state, day, config, country_of)
    entry = ReasonLogEntry(day.date, pass_name, decision, detail)
    if decision == SegmentDecision.CONTINUE:
        return OpenTrip(state.days + (day,), state.reasons + (entry,)), None, entry
    return OpenTrip((day,), (entry,)), state.close(), entry


def segment_days(
    days: List[DayBucket],
    config: ScanConfig,
    country_of: CountryOf,
    cancel_check: Optional[Callable[[], None]] = None,
) -> SegmentationResult:
    """
    Run the state machine over `days` (sorted by date) and close whatever is
    still open at the end.
    """
    result = SegmentationResult()
    state: SegmenterState = NoOpenTrip()
    for day in days:
        if cancel_check is not None:
            cancel_check()
        state, closed, entry = step(state, day, config, country_of)
        result.reason_log.append(entry)
        if closed is not None and closed.days:
            result.trips.append(closed)
    if isinstance(state, OpenTrip):
        result.trips.append(state.close())

    if config.smooth_single_day_trips:
        result.trips = smooth_single_day_trips(result.trips, config, country_of)
        result.reason_log.extend(
            e for trip in result.trips for e in trip.reason_log if e.pass_name == SegmentPass.SMOOTHING
        )
    return result


def smooth_single_day_trips(
    trips: List[TripCandidate],
    config: ScanConfig,
    country_of: CountryOf,
) -> List[TripCandidate]:
    """
    Fold a one-day trip into an adjacent trip when the adjacent day is in the
    same country, within the gap tolerance and within `smoothing_max_km`.
    The nearer neighbour wins, the previous trip on ties. Runs until stable.
    """

    def _distance_if_mergeable(a: DayBucket, b: DayBucket) -> Optional[float]:
        later, earlier = (b, a) if b.date > a.date else (a, b)
        if later.gap_days_since(earlier) > config.max_gap_days:
            return None
        ca, cb = country_of(a), country_of(b)
        if not ca or not cb or not _same_country(ca, cb):
            return None
        if a.representative_coordinate is None or b.representative_coordinate is None:
            return None
        distance = haversine_km(a.representative_coordinate, b.representative_coordinate)
        return distance if distance <= config.smoothing_max_km else None

    result = list(trips)
    changed = True
    while changed:
        changed = False
        for i, trip in enumerate(result):
            if len(trip.days) != 1:
                continue
            single = trip.days[0]
            to_prev = _distance_if_mergeable(result[i - 1].days[-1], single) if i > 0 else None
            to_next = (
                _distance_if_mergeable(single, result[i + 1].days[0]) if i < len(result) - 1 else None
            )
            if to_prev is None and to_next is None:
                continue
            if to_prev is not None and (to_next is None or to_prev <= to_next):
                target = result[i - 1]
                entry = ReasonLogEntry(single.date, SegmentPass.SMOOTHING, SegmentDecision.MERGE, f"{to_prev:.1f} km")
                merged = TripCandidate(
                    days=target.days + trip.days,
                    reason_log=target.reason_log + trip.reason_log + [entry],
                )
                result[i - 1 : i + 1] = [merged]
            else:
                target = result[i + 1]
                entry = ReasonLogEntry(single.date, SegmentPass.SMOOTHING, SegmentDecision.MERGE, f"{to_next:.1f} km")
                merged = TripCandidate(
                    days=trip.days + target.days,
                    reason_log=trip.reason_log + [entry] + target.reason_log,
                )
                result[i : i + 2] = [merged]
            changed = True
            break
    return result
