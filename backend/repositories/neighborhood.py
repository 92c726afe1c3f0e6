"""
Neighborhood zone repository backed by SQLAlchemy/SQLite.
"""
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from domain.models import Coordinate, NeighborhoodZone
from repositories.models import NeighborhoodZoneORM

_ZONE_ROW_ID = 1


def _zone_from_orm(orm: NeighborhoodZoneORM) -> NeighborhoodZone:
    return NeighborhoodZone(
        center=Coordinate(orm.lat, orm.lon),
        radius_m=orm.radius_m,
        display_name=orm.display_name,
    )


class NeighborhoodRepository:
    """Read and replace the single configured home zone."""

    def get_zone(self, session: Session) -> Optional[NeighborhoodZone]:
        orm = session.get(NeighborhoodZoneORM, _ZONE_ROW_ID)
        return _zone_from_orm(orm) if orm else None

    def save_zone(self, session: Session, zone: NeighborhoodZone) -> NeighborhoodZone:
        orm = session.get(NeighborhoodZoneORM, _ZONE_ROW_ID)
        if orm is None:
            orm = NeighborhoodZoneORM(id=_ZONE_ROW_ID)
        orm.lat = zone.center.lat
        orm.lon = zone.center.lon
        orm.radius_m = zone.radius_m
        orm.display_name = zone.display_name
        orm.updated_at = datetime.utcnow()
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _zone_from_orm(orm)

    def clear_zone(self, session: Session) -> None:
        session.query(NeighborhoodZoneORM).delete()
        session.commit()


class SessionNeighborhoodConfig:
    """Neighborhood config for the scanner: opens a short session per read."""

    def __init__(self, session_factory: Callable[[], Session], repo: NeighborhoodRepository = None):
        self.session_factory = session_factory
        self.repo = repo or NeighborhoodRepository()

    def current_zone(self) -> Optional[NeighborhoodZone]:
        with self.session_factory() as session:
            return self.repo.get_zone(session)
