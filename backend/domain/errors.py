"""
Typed failures raised at the boundaries of the search core.

Every boundary operation either returns a value or raises one of these, so
callers can map each kind to its own user-facing guidance.
"""
from typing import Optional


class ToiletFinderError(Exception):
    """Base class for all expected failures."""

    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidInput(ToiletFinderError):
    """Bad coordinates or radius; raised before any I/O happens."""


class TransportError(ToiletFinderError):
    """A single HTTP exchange failed (network error, hard timeout or non-OK status)."""

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteUnavailable(ToiletFinderError):
    """Every mirror endpoint and every scheduled attempt failed."""

    retryable = True

    def __init__(self, reason: str = "Geodata service unavailable. Try again shortly."):
        super().__init__(reason)
        self.reason = reason


class GeolocationError(ToiletFinderError):
    """Base for position lookup failures."""

    kind = "error"


class PermissionDenied(GeolocationError):
    kind = "denied"


class InsecureContext(PermissionDenied):
    """Geolocation was requested from an origin that is neither HTTPS nor localhost."""

    kind = "insecure"


class PositionTimeout(GeolocationError):
    kind = "timeout"
    retryable = True


class PositionUnavailable(GeolocationError):
    kind = "unavailable"
    retryable = True


class DirectoryError(ToiletFinderError):
    """The place directory could not be read or written. Non-fatal for callers."""

    retryable = True


class ValidationError(ToiletFinderError):
    """A directory payload was malformed; maps to HTTP 400."""
