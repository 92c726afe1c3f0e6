"""
Neighborhood zone API routes.

The zone is the user's home area; photos inside it never count toward trips.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from db import SessionLocal
from domain.models import Coordinate, NeighborhoodZone
from repositories import NeighborhoodRepository

router = APIRouter()
zone_repo = NeighborhoodRepository()
logger = logging.getLogger(__name__)


class NeighborhoodZoneRequest(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    radius_m: float = Field(..., gt=0)
    display_name: Optional[str] = None


class NeighborhoodZoneResponse(BaseModel):
    lat: float
    lon: float
    radius_m: float
    display_name: Optional[str] = None


def zone_to_response(zone: NeighborhoodZone) -> NeighborhoodZoneResponse:
    return NeighborhoodZoneResponse(
        lat=zone.center.lat,
        lon=zone.center.lon,
        radius_m=zone.radius_m,
        display_name=zone.display_name,
    )


@router.get("", response_model=NeighborhoodZoneResponse)
async def get_neighborhood():
    """Get the configured home zone."""
    with SessionLocal() as session:
        zone = zone_repo.get_zone(session)
    if zone is None:
        raise HTTPException(status_code=404, detail="No neighborhood configured")
    return zone_to_response(zone)


@router.put("", response_model=NeighborhoodZoneResponse)
async def put_neighborhood(req: NeighborhoodZoneRequest):
    """
    Set or replace the home zone. Scans already running keep the zone they
    started with.
    """
    zone = NeighborhoodZone(
        center=Coordinate(req.lat, req.lon),
        radius_m=req.radius_m,
        display_name=req.display_name,
    )
    with SessionLocal() as session:
        saved = zone_repo.save_zone(session, zone)
    logger.info("Neighborhood zone set: %.0fm around %s,%s", saved.radius_m, saved.center.lat, saved.center.lon)
    return zone_to_response(saved)


@router.delete("")
async def delete_neighborhood():
    """Remove the home zone; later scans exclude nothing."""
    with SessionLocal() as session:
        zone_repo.clear_zone(session)
    return {"message": "Neighborhood cleared"}
