"""
SQLAlchemy ORM models for persistence.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Float, Integer, String

from db import Base


class ClaimedPhotoORM(Base):
    """A photo that belongs to a trip the user already accepted."""
    __tablename__ = "claimed_photos"

    photo_id = Column(String, primary_key=True, index=True)
    trip_id = Column(String, nullable=False, index=True)
    claimed_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class NeighborhoodZoneORM(Base):
    """Single-row table holding the user's home zone."""
    __tablename__ = "neighborhood_zone"

    id = Column(Integer, primary_key=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    radius_m = Column(Float, nullable=False)
    display_name = Column(String, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
