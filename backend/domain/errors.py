"""
Typed failures of the trip scanner.

Boundary errors (bad range, no photo access) reach the caller; geocoder
failures are absorbed by the country resolver.
"""


class TripScanError(Exception):
    """Base class for scanner errors."""


class InvalidRangeError(TripScanError, ValueError):
    """Requested scan range is empty or reversed."""


class PhotoAccessDeniedError(TripScanError):
    """The photo source refused access to the library."""


class GeocodeUnavailableError(TripScanError):
    """A reverse geocode lookup failed or timed out."""


class ScanCancelledError(TripScanError):
    """The scan was cancelled before it finished."""
