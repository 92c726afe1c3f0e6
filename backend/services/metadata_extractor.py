"""
EXIF capture metadata extraction.

Reads the two things the trip scanner needs from an image file: when it was
taken and where. Never raises for unreadable or metadata-less files.
"""
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from domain.models import Coordinate

EXIF_IFD_TAG = 0x8769
GPS_IFD_TAG = 0x8825


def extract_capture_info(path: str) -> Tuple[Optional[datetime], Optional[Coordinate]]:
    """
    Extract (taken_at, coordinate) from an image on disk.

    Returns:
        Capture datetime as naive local time and GPS coordinate. Either is
        None when missing or unparseable.
    """
    try:
        from PIL import Image

        with Image.open(path) as img:
            exif_data = _get_exif_dict(img)
    except (OSError, ValueError):
        return None, None

    if not exif_data:
        return None, None

    taken_at = _parse_datetime(exif_data)
    coordinate = None
    gps_info = exif_data.get("GPSInfo")
    if gps_info:
        lat, lon = _parse_gps_coordinates(gps_info)
        if lat is not None and lon is not None and _is_valid_coordinate(lat, lon):
            coordinate = Coordinate(lat, lon)
    return taken_at, coordinate


def _get_exif_dict(img) -> Optional[Dict[str, Any]]:
    """
    Extract EXIF data as a human-readable dictionary.

    Merges the main IFD with the Exif sub-IFD (where DateTimeOriginal lives)
    and exposes the GPS sub-IFD under "GPSInfo".
    """
    from PIL.ExifTags import GPSTAGS, TAGS

    exif = img.getexif()
    if not exif:
        return None

    exif_dict: Dict[str, Any] = {}
    for tag_id, value in exif.items():
        if tag_id in (EXIF_IFD_TAG, GPS_IFD_TAG):
            continue
        exif_dict[TAGS.get(tag_id, str(tag_id))] = _make_json_safe(value)

    for tag_id, value in exif.get_ifd(EXIF_IFD_TAG).items():
        exif_dict[TAGS.get(tag_id, str(tag_id))] = _make_json_safe(value)

    gps_ifd = exif.get_ifd(GPS_IFD_TAG)
    if gps_ifd:
        exif_dict["GPSInfo"] = {
            GPSTAGS.get(tag_id, str(tag_id)): _make_json_safe(value)
            for tag_id, value in gps_ifd.items()
        }
    return exif_dict


def _make_json_safe(value: Any) -> Any:
    """Convert EXIF value to JSON-serializable type."""
    if value is None:
        return None

    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")

    # Tuples/lists are common for GPS coordinates
    if isinstance(value, (tuple, list)):
        return [_make_json_safe(v) for v in value]

    # IFDRational or similar fraction types
    if hasattr(value, "numerator") and hasattr(value, "denominator"):
        if value.denominator == 0:
            return None
        return float(value.numerator) / float(value.denominator)

    if isinstance(value, (int, float, str, bool)):
        return value

    if isinstance(value, dict):
        return {str(k): _make_json_safe(v) for k, v in value.items()}

    return str(value)


def _parse_datetime(exif_data: Dict[str, Any]) -> Optional[datetime]:
    """Parse capture datetime from EXIF data."""
    # Try various datetime tags in order of preference
    datetime_tags = ["DateTimeOriginal", "DateTimeDigitized", "DateTime"]

    for tag in datetime_tags:
        value = exif_data.get(tag)
        if value:
            parsed = _parse_exif_datetime(value)
            if parsed:
                return parsed

    return None


def _parse_exif_datetime(value: Any) -> Optional[datetime]:
    """Parse an EXIF datetime string."""
    if not isinstance(value, str):
        return None

    formats = [
        "%Y:%m:%d %H:%M:%S",  # Standard EXIF format
        "%Y-%m-%d %H:%M:%S",
        "%Y/%m/%d %H:%M:%S",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(value.strip().rstrip("\x00"), fmt)
        except ValueError:
            continue

    return None


def _parse_gps_coordinates(gps_info: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse GPS latitude and longitude from EXIF GPSInfo.

    Returns:
        Tuple of (latitude, longitude) in decimal degrees, or (None, None).
    """
    lat = gps_info.get("GPSLatitude")
    lat_ref = gps_info.get("GPSLatitudeRef") or "N"
    lon = gps_info.get("GPSLongitude")
    lon_ref = gps_info.get("GPSLongitudeRef") or "E"

    if lat is None or lon is None:
        return None, None

    return _dms_to_decimal(lat, lat_ref), _dms_to_decimal(lon, lon_ref)


def _dms_to_decimal(dms: Any, ref: str) -> Optional[float]:
    """
    Convert degrees/minutes/seconds to decimal degrees, negative for S/W.
    """
    if not isinstance(dms, (list, tuple)) or len(dms) < 3:
        return None
    try:
        degrees = float(dms[0])
        minutes = float(dms[1])
        seconds = float(dms[2])
    except (TypeError, ValueError):
        return None

    decimal = degrees + (minutes / 60.0) + (seconds / 3600.0)
    if str(ref).strip().upper() in ("S", "W"):
        decimal = -decimal
    return round(decimal, 7)  # ~1cm precision


def _is_valid_coordinate(lat: float, lon: float) -> bool:
    """Catch swapped or garbage coordinates."""
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def register_heif_opener() -> bool:
    """
    Register HEIF/HEIC opener with Pillow if pillow-heif is available.

    Call this at application startup so iPhone photos can be read.
    """
    try:
        from pillow_heif import register_heif_opener as _register
    except ImportError:
        return False
    _register()
    return True
