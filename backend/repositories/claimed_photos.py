"""
Claimed-photo repository backed by SQLAlchemy/SQLite.

Photos of accepted trips are recorded here so later scans skip them.
"""
from datetime import datetime
from typing import Callable, List, Set

from sqlalchemy.orm import Session

from domain.models import TripDraft
from repositories.models import ClaimedPhotoORM


class ClaimedPhotosRepository:
    """CRUD operations for claimed photo identifiers."""

    def claimed_identifiers(self, session: Session) -> Set[str]:
        return {row[0] for row in session.query(ClaimedPhotoORM.photo_id).all()}

    def claim_trip(self, session: Session, draft: TripDraft) -> List[str]:
        """
        Record every photo of an accepted draft. Returns the newly claimed ids;
        photos already claimed keep their original trip.
        """
        photo_ids = draft.photo_ids
        if not photo_ids:
            return []
        existing = {
            row[0]
            for row in session.query(ClaimedPhotoORM.photo_id)
            .filter(ClaimedPhotoORM.photo_id.in_(photo_ids))
            .all()
        }
        now = datetime.utcnow()
        added: List[str] = []
        for pid in photo_ids:
            if pid in existing:
                continue
            session.add(ClaimedPhotoORM(photo_id=pid, trip_id=draft.id, claimed_at=now))
            added.append(pid)
        session.commit()
        return added


class SessionClaimedStore:
    """Claimed-photo store for the scanner: opens a short session per read."""

    def __init__(self, session_factory: Callable[[], Session], repo: ClaimedPhotosRepository = None):
        self.session_factory = session_factory
        self.repo = repo or ClaimedPhotosRepository()

    def claimed_identifiers(self) -> Set[str]:
        with self.session_factory() as session:
            return self.repo.claimed_identifiers(session)
