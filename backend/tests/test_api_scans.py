from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.database import scans_db
from api.main import app
from api.routes import neighborhood as neighborhood_routes
from api.routes import scans as scan_routes
from db import Base
from domain.models import Coordinate, PhotoRecord
from repositories import SessionClaimedStore, SessionNeighborhoodConfig
from repositories import models  # noqa: F401  registers tables
from services.photo_source import InMemoryPhotoSource
from services.trip_scanner import ScanRunner, TripScanner

PARIS = Coordinate(48.8566, 2.3522)
ROME = Coordinate(41.9028, 12.4964)


def _photos(prefix, start, days, coord):
    return [
        PhotoRecord(id=f"{prefix}-{d}", timestamp=start + timedelta(days=d, hours=12), coordinate=coord)
        for d in range(days)
    ]


@pytest.fixture
def client(tmp_path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'api.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    monkeypatch.setattr(scan_routes, "SessionLocal", factory)
    monkeypatch.setattr(neighborhood_routes, "SessionLocal", factory)

    photos = _photos("paris", datetime(2024, 3, 10), 3, PARIS) + _photos("rome", datetime(2024, 4, 2), 2, ROME)
    scanner = TripScanner(
        InMemoryPhotoSource(photos),
        neighborhood=SessionNeighborhoodConfig(factory),
        claimed_store=SessionClaimedStore(factory),
    )
    runner = ScanRunner(scanner)
    monkeypatch.setattr(scan_routes, "_runner", runner)
    scans_db.clear()

    yield TestClient(app)

    runner.shutdown()
    scans_db.clear()
    engine.dispose()


def _run_scan(client, body):
    resp = client.post("/scans", json=body)
    assert resp.status_code == 202
    scan_id = resp.json()["scan_id"]
    status = client.get(f"/scans/{scan_id}", params={"wait": 5})
    assert status.status_code == 200
    return scan_id, status.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_scan_month_range(client):
    _, body = _run_scan(client, {"year": 2024, "start_month": 3, "end_month": 4})
    assert body["stage"] == "done"
    result = body["result"]
    assert result["status"] == "ok"
    assert [t["start_date"] for t in result["trips"]] == ["2024-03-10", "2024-04-02"]
    assert result["trips"][0]["photo_count"] == 3
    assert result["trips"][0]["reason_log"][0]["pass_name"] == "first_day"


def test_scan_explicit_range(client):
    _, body = _run_scan(client, {"start": "2024-04-01T00:00:00", "end": "2024-05-01T00:00:00"})
    assert len(body["result"]["trips"]) == 1


def test_scan_with_nothing_in_range(client):
    _, body = _run_scan(client, {"year": 2023})
    assert body["result"]["status"] == "no_photos"
    assert body["result"]["trips"] == []


@pytest.mark.parametrize(
    "body",
    [
        {"start": "2024-05-01T00:00:00", "end": "2024-04-01T00:00:00"},
        {"start": "2024-05-01T00:00:00"},
        {"year": 2024, "start_month": 5, "end_month": 2},
        {"start_month": 1},
        {"start": "2024-01-01T00:00:00Z", "end": "2024-02-01T00:00:00"},
    ],
)
def test_invalid_range_is_422(client, body):
    assert client.post("/scans", json=body).status_code == 422


def test_unknown_scan_is_404(client):
    assert client.get("/scans/does-not-exist").status_code == 404
    assert client.delete("/scans/does-not-exist").status_code == 404


def test_accept_trip_claims_photos(client):
    scan_id, body = _run_scan(client, {"year": 2024})
    paris = body["result"]["trips"][0]

    resp = client.post(f"/scans/{scan_id}/trips/{paris['id']}/accept")
    assert resp.status_code == 200
    assert resp.json()["claimed_photo_ids"] == ["paris-0", "paris-1", "paris-2"]

    _, rescan = _run_scan(client, {"year": 2024})
    assert [t["start_date"] for t in rescan["result"]["trips"]] == ["2024-04-02"]
    assert rescan["result"]["claimed_skipped"] == 3


def test_accept_unknown_trip_is_404(client):
    scan_id, _ = _run_scan(client, {"year": 2024})
    assert client.post(f"/scans/{scan_id}/trips/nope/accept").status_code == 404


def test_neighborhood_crud(client):
    assert client.get("/neighborhood").status_code == 404

    resp = client.put("/neighborhood", json={"lat": PARIS.lat, "lon": PARIS.lon, "radius_m": 2000})
    assert resp.status_code == 200
    assert client.get("/neighborhood").json()["radius_m"] == 2000

    assert client.delete("/neighborhood").status_code == 200
    assert client.get("/neighborhood").status_code == 404


def test_neighborhood_rejects_bad_coordinates(client):
    resp = client.put("/neighborhood", json={"lat": 123.0, "lon": 0.0, "radius_m": 100})
    assert resp.status_code == 422


def test_neighborhood_excludes_home_photos_from_scan(client):
    client.put("/neighborhood", json={"lat": PARIS.lat, "lon": PARIS.lon, "radius_m": 2000})
    _, body = _run_scan(client, {"year": 2024})
    result = body["result"]
    assert [t["start_date"] for t in result["trips"]] == ["2024-04-02"]
    assert result["excluded_local"] == 3
    assert result["reason_log"][0]["pass_name"] == "bridge"
    assert result["reason_log"][0]["detail"] == "no open trip"
    assert len(result["reason_log"]) == 5


def test_scan_without_body_uses_default_window(client):
    resp = client.post("/scans")
    assert resp.status_code == 202
    body = resp.json()
    start = datetime.fromisoformat(body["start"])
    end = datetime.fromisoformat(body["end"])
    assert (end - start).days == 90


def test_finished_scan_is_forgotten_after_next_submit(client):
    old_id, _ = _run_scan(client, {"year": 2024})
    new_id, _ = _run_scan(client, {"year": 2024})
    assert client.get(f"/scans/{old_id}").status_code == 404
    assert client.get(f"/scans/{new_id}").status_code == 200
    assert list(scans_db) == [new_id]


def test_cancelled_scan_is_forgotten(client):
    scan_id, _ = _run_scan(client, {"year": 2024})
    assert client.delete(f"/scans/{scan_id}").status_code == 200
    assert client.get(f"/scans/{scan_id}").status_code == 404
    assert scan_id not in scans_db
