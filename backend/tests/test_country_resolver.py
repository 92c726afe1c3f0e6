import threading
from datetime import date, datetime
from unittest.mock import MagicMock

from domain.errors import GeocodeUnavailableError
from domain.models import Coordinate, DayBucket, PhotoRecord
from services.country_resolver import DayCountryResolver, days_needing_country
from services.geo import coordinate_bucket_key
from services.geocode_cache import BoundedCountryCache

LISBON = Coordinate(38.7223, -9.1393)
PORTO = Coordinate(41.1579, -8.6291)


def _day(d: date, coord=None, hints=()) -> DayBucket:
    photos = [
        PhotoRecord(id=f"{d.isoformat()}-{i}", timestamp=datetime(d.year, d.month, d.day, 10 + i), country_hint=h)
        for i, h in enumerate(hints or (None,))
    ]
    return DayBucket(date=d, qualifying_photos=photos, representative_coordinate=coord)


def test_country_of_uses_geocoder_once_per_day():
    geocoder = MagicMock()
    geocoder.lookup_country.return_value = "Portugal"
    resolver = DayCountryResolver(geocoder=geocoder)
    day = _day(date(2024, 3, 1), LISBON)

    assert resolver.country_of(day) == "Portugal"
    assert resolver.country_of(day) == "Portugal"
    assert geocoder.lookup_country.call_count == 1
    assert day.country_resolved


def test_cached_cell_skips_geocoder():
    geocoder = MagicMock()
    cache = BoundedCountryCache()
    cache.put(coordinate_bucket_key(LISBON), "Portugal")
    resolver = DayCountryResolver(geocoder=geocoder, cache=cache)

    assert resolver.country_of(_day(date(2024, 3, 1), LISBON)) == "Portugal"
    geocoder.lookup_country.assert_not_called()


def test_failed_lookup_is_absent_and_not_cached():
    geocoder = MagicMock()
    geocoder.lookup_country.side_effect = GeocodeUnavailableError("boom")
    cache = BoundedCountryCache()
    resolver = DayCountryResolver(geocoder=geocoder, cache=cache)

    assert resolver.country_of(_day(date(2024, 3, 1), LISBON)) is None
    assert len(cache) == 0


def test_slow_lookup_times_out_to_absent():
    release = threading.Event()

    class SlowGeocoder:
        def lookup_country(self, coordinate):
            release.wait(5)
            return "Portugal"

    cache = BoundedCountryCache()
    resolver = DayCountryResolver(geocoder=SlowGeocoder(), cache=cache, timeout_s=0.05)
    try:
        assert resolver.country_of(_day(date(2024, 3, 1), LISBON)) is None
        assert len(cache) == 0
    finally:
        release.set()


def test_no_coordinate_falls_back_to_hints():
    resolver = DayCountryResolver()
    day = _day(date(2024, 3, 1), hints=("Spain", "Portugal", "Portugal"))
    assert resolver.country_of(day) == "Portugal"


def test_hint_ties_break_alphabetically():
    resolver = DayCountryResolver()
    day = _day(date(2024, 3, 1), hints=("Spain", "Portugal"))
    assert resolver.country_of(day) == "Portugal"


def test_no_geocoder_and_no_hint_is_absent():
    resolver = DayCountryResolver()
    assert resolver.country_of(_day(date(2024, 3, 1), LISBON)) is None


def test_days_needing_country_only_comparable_pairs():
    located_a = _day(date(2024, 3, 1), LISBON)
    unlocated = _day(date(2024, 3, 2))
    located_b = _day(date(2024, 3, 3), PORTO)
    far_unlocated = _day(date(2024, 3, 20))
    needed = days_needing_country([located_a, unlocated, located_b, far_unlocated], max_gap_days=2)
    assert [d.date for d in needed] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]


def test_prefetch_dedupes_lookups_by_cell():
    geocoder = MagicMock()
    geocoder.lookup_country.return_value = "Portugal"
    resolver = DayCountryResolver(geocoder=geocoder, max_workers=2)
    nearby = Coordinate(LISBON.lat + 0.0001, LISBON.lon)
    days = [
        _day(date(2024, 3, 1), LISBON),
        _day(date(2024, 3, 2)),
        _day(date(2024, 3, 3), nearby),
    ]
    resolver.prefetch(days, max_gap_days=2)

    assert geocoder.lookup_country.call_count == 1
    assert all(d.country_resolved for d in days)
    assert days[0].representative_country == "Portugal"
    assert days[2].representative_country == "Portugal"
    assert days[1].representative_country is None
