"""Reverse geocoding of coordinates to country names using OpenStreetMap Nominatim.

Only the country is needed by the trip segmenter, so lookups ask for a coarse
zoom level and the API surface is a single `lookup_country` call.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from typing import Any, Optional

import requests

from domain.errors import GeocodeUnavailableError
from domain.models import Coordinate

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org/reverse"
logger = logging.getLogger(__name__)
_session = requests.Session()
_last_request_ts: float = 0.0
_lock = threading.Lock()
_MIN_INTERVAL_SEC = float(os.getenv("NOMINATIM_MIN_INTERVAL", "1.1"))
NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT")
NOMINATIM_REFERER = os.getenv("NOMINATIM_REFERER")
# Zoom 3 resolves to country level and keeps responses small.
COUNTRY_ZOOM = 3

FALLBACK_UA = "trip-scanner/0.1 (contact: example@example.com)"
if NOMINATIM_USER_AGENT is None:
    logger.warning(
        "NOMINATIM_USER_AGENT not set in environment; using fallback UA. "
        "This may violate Nominatim usage policy."
    )


def _redact_email(ua: str) -> str:
    if "@" not in ua:
        return ua
    return re.sub(r"\S+@\S+", "<redacted>", ua)


_ua_value = NOMINATIM_USER_AGENT or FALLBACK_UA
NOMINATIM_HEADERS = {
    "User-Agent": _ua_value,
}
if NOMINATIM_REFERER:
    NOMINATIM_HEADERS["Referer"] = NOMINATIM_REFERER


def _throttled_get(
    url: str,
    *,
    params: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> requests.Response:
    """Perform a GET request with a simple global rate limit."""
    global _last_request_ts
    with _lock:
        now = time.time()
        delta = now - _last_request_ts
        if delta < _MIN_INTERVAL_SEC:
            time.sleep(_MIN_INTERVAL_SEC - delta)
        _last_request_ts = time.time()
    return _session.get(url, params=params, headers=headers, timeout=timeout)


class NominatimGeocoder:
    """Country lookups against Nominatim's reverse endpoint.

    Raises GeocodeUnavailableError on network and parsing errors; returns None
    when the point resolves to no country (open sea, for instance). Retries are
    left to the caller.
    """

    def __init__(self, base_url: str = NOMINATIM_BASE_URL, timeout_s: float = 5.0):
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._logged_ua = False

    def lookup_country(self, coordinate: Coordinate) -> Optional[str]:
        if not self._logged_ua:
            logger.debug("Nominatim User-Agent: %s", _redact_email(_ua_value))
            self._logged_ua = True

        params = {
            "format": "jsonv2",
            "lat": f"{coordinate.lat:.5f}",
            "lon": f"{coordinate.lon:.5f}",
            "zoom": str(COUNTRY_ZOOM),
            "addressdetails": "1",
        }
        try:
            resp = _throttled_get(
                self.base_url, params=params, headers=NOMINATIM_HEADERS, timeout=self.timeout_s
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise GeocodeUnavailableError(
                f"Nominatim request failed for {coordinate.lat},{coordinate.lon}: {exc}"
            ) from exc

        try:
            data = resp.json()
        except ValueError as exc:
            raise GeocodeUnavailableError(
                f"Nominatim returned invalid JSON for {coordinate.lat},{coordinate.lon}"
            ) from exc

        address = (data or {}).get("address") or {}
        country = address.get("country")
        if not country:
            return None
        return str(country).strip() or None
