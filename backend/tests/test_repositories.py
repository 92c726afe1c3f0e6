from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db import Base
from domain.models import Coordinate, NeighborhoodZone, PhotoRecord, PlaceStop, TripDay, TripDraft
from repositories import (
    ClaimedPhotosRepository,
    NeighborhoodRepository,
    SessionClaimedStore,
    SessionNeighborhoodConfig,
)
from repositories import models


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


def _draft(*photo_ids: str) -> TripDraft:
    photos = tuple(PhotoRecord(id=pid, timestamp=datetime(2024, 5, 1, 12)) for pid in photo_ids)
    day = TripDay(day_index=1, date=date(2024, 5, 1), place_stops=(PlaceStop(0, photos),))
    return TripDraft(id=TripDraft.derive_id(photo_ids), days=(day,))


def test_claim_trip_records_photos(session_factory):
    repo = ClaimedPhotosRepository()
    draft = _draft("a.jpg", "b.jpg")
    with session_factory() as session:
        added = repo.claim_trip(session, draft)
        assert added == ["a.jpg", "b.jpg"]
        assert repo.claimed_identifiers(session) == {"a.jpg", "b.jpg"}


def test_claim_trip_keeps_existing_claims(session_factory):
    repo = ClaimedPhotosRepository()
    with session_factory() as session:
        repo.claim_trip(session, _draft("a.jpg", "b.jpg"))
        added = repo.claim_trip(session, _draft("b.jpg", "c.jpg"))
        assert added == ["c.jpg"]
        assert repo.claimed_identifiers(session) == {"a.jpg", "b.jpg", "c.jpg"}


def test_session_claimed_store(session_factory):
    with session_factory() as session:
        ClaimedPhotosRepository().claim_trip(session, _draft("a.jpg"))
    assert SessionClaimedStore(session_factory).claimed_identifiers() == {"a.jpg"}


def test_neighborhood_save_replaces_single_zone(session_factory):
    repo = NeighborhoodRepository()
    with session_factory() as session:
        assert repo.get_zone(session) is None
        repo.save_zone(session, NeighborhoodZone(Coordinate(1.0, 2.0), 500.0, "Old"))
        saved = repo.save_zone(session, NeighborhoodZone(Coordinate(3.0, 4.0), 800.0))
        assert saved == NeighborhoodZone(Coordinate(3.0, 4.0), 800.0)
        assert session.query(models.NeighborhoodZoneORM).count() == 1

    config = SessionNeighborhoodConfig(session_factory)
    assert config.current_zone() == NeighborhoodZone(Coordinate(3.0, 4.0), 800.0)


def test_neighborhood_clear(session_factory):
    repo = NeighborhoodRepository()
    with session_factory() as session:
        repo.save_zone(session, NeighborhoodZone(Coordinate(1.0, 2.0), 500.0))
        repo.clear_zone(session)
        assert repo.get_zone(session) is None
