import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from domain.models import ScanConfig

# Basic settings helper to read environment configuration.

BACKEND_ROOT = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_optional_float(val: str | None) -> Optional[float]:
    if val is None or not val.strip():
        return None
    return float(val)


class Settings:
    def __init__(self) -> None:
        self.TRIP_MAX_RADIUS_KM: float = float(os.getenv("TRIP_MAX_RADIUS_KM", "150"))
        self.TRIP_MAX_GAP_DAYS: int = int(os.getenv("TRIP_MAX_GAP_DAYS", "2"))
        self.STOP_RADIUS_METERS: float = float(os.getenv("STOP_RADIUS_METERS", "300"))
        self.SCAN_WINDOW_DAYS: int = int(os.getenv("SCAN_WINDOW_DAYS", "90"))
        self.TRIP_EXCLUSION_RADIUS_KM: Optional[float] = _as_optional_float(
            os.getenv("TRIP_EXCLUSION_RADIUS_KM")
        )
        self.TRIP_SMOOTHING_ENABLED: bool = _as_bool(os.getenv("TRIP_SMOOTHING_ENABLED"), False)
        self.TRIP_SMOOTHING_MAX_KM: float = float(os.getenv("TRIP_SMOOTHING_MAX_KM", "160"))
        self.GEOCODE_TIMEOUT_SECONDS: float = float(os.getenv("GEOCODE_TIMEOUT_SECONDS", "5"))
        self.GEOCODE_MAX_WORKERS: int = int(os.getenv("GEOCODE_MAX_WORKERS", "4"))
        self.GEOCODE_CACHE_MAX_ENTRIES: int = int(os.getenv("GEOCODE_CACHE_MAX_ENTRIES", "4096"))
        self.GEOCODE_CACHE_PATH: str = os.getenv(
            "GEOCODE_CACHE_PATH", str(BACKEND_ROOT / "data" / "country_cache.sqlite")
        )
        self.COUNTRY_LOOKUP_ENABLED: bool = _as_bool(os.getenv("COUNTRY_LOOKUP_ENABLED"), False)
        self.PHOTO_LIBRARY_ROOT: str = os.getenv("PHOTO_LIBRARY_ROOT", "media/library")
        self.LOCAL_TIMEZONE: Optional[str] = os.getenv("LOCAL_TIMEZONE") or None
        self.TRIP_CLUSTERING_DEBUG: bool = _as_bool(os.getenv("TRIP_CLUSTERING_DEBUG"), False)
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{BACKEND_ROOT / 'app.db'}")

    def scan_config(self) -> ScanConfig:
        return ScanConfig(
            max_trip_radius_km=self.TRIP_MAX_RADIUS_KM,
            max_gap_days=self.TRIP_MAX_GAP_DAYS,
            stop_radius_m=self.STOP_RADIUS_METERS,
            window_days=self.SCAN_WINDOW_DAYS,
            trip_exclusion_radius_km=self.TRIP_EXCLUSION_RADIUS_KM,
            smooth_single_day_trips=self.TRIP_SMOOTHING_ENABLED,
            smoothing_max_km=self.TRIP_SMOOTHING_MAX_KM,
            geocode_timeout_s=self.GEOCODE_TIMEOUT_SECONDS,
            geocode_max_workers=self.GEOCODE_MAX_WORKERS,
        )

    def local_tz(self) -> Optional[ZoneInfo]:
        return ZoneInfo(self.LOCAL_TIMEZONE) if self.LOCAL_TIMEZONE else None


settings = Settings()
