"""
Position lookup contract.

The actual position comes from the client device; the backend only defines the
provider interface, the secure-context rule and the guidance shown for each
failure kind.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from domain.errors import (
    GeolocationError,
    InsecureContext,
    InvalidInput,
    PositionUnavailable,
)
from domain.models import Coordinate

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 12000
LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}

GUIDANCE = {
    "insecure": "Location needs a secure (HTTPS) connection. Open the app over HTTPS.",
    "denied": "Permission denied. Allow location access in your browser settings.",
    "timeout": "GPS timed out. Move outdoors and try again.",
    "unavailable": "Position unavailable. Try again in a moment.",
}
GENERIC_GUIDANCE = "Location error. Check that location services are turned on."


class GeoProvider:
    """Supplies the current position or raises a GeolocationError subclass."""

    def get_current_position(
        self, timeout_ms: int = DEFAULT_TIMEOUT_MS, high_accuracy: bool = True
    ) -> Coordinate:
        raise NotImplementedError


class FixedPositionProvider(GeoProvider):
    """Provider returning a known position, e.g. one reported by the client."""

    def __init__(self, coordinate: Optional[Coordinate] = None, error: Optional[GeolocationError] = None):
        self.coordinate = coordinate
        self.error = error

    def get_current_position(
        self, timeout_ms: int = DEFAULT_TIMEOUT_MS, high_accuracy: bool = True
    ) -> Coordinate:
        if self.error is not None:
            raise self.error
        if self.coordinate is None:
            raise PositionUnavailable("No position reported.")
        return self.coordinate


def is_secure_context(origin: str) -> bool:
    parts = urlsplit(origin)
    return parts.scheme == "https" or (parts.hostname or "") in LOCAL_HOSTS


def locate(
    provider: GeoProvider,
    origin: str,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    high_accuracy: bool = True,
) -> Coordinate:
    """Ask the provider for a position after checking the origin is allowed to."""
    if not is_secure_context(origin):
        raise InsecureContext(f"Geolocation is not available on {origin}")
    coordinate = provider.get_current_position(timeout_ms=timeout_ms, high_accuracy=high_accuracy)
    try:
        # providers may hand back anything; re-validate before it reaches the search
        return Coordinate.from_raw(coordinate.lat, coordinate.lon)
    except (AttributeError, InvalidInput) as exc:
        logger.warning("Provider returned an unusable position: %r", coordinate)
        raise PositionUnavailable("Invalid coordinates.") from exc


def user_guidance(error: Exception) -> str:
    if isinstance(error, GeolocationError):
        return GUIDANCE.get(error.kind, GENERIC_GUIDANCE)
    return GENERIC_GUIDANCE
