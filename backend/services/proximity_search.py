"""
Proximity search: Overpass results + user-submitted places, ranked.

`find_nearest` never raises for expected failures. A remote outage still
returns the directory places (with `error` set) so the caller can show what it
has next to a retry hint; a directory failure is reported separately and does
not hide remote results.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from domain.errors import DirectoryError, InvalidInput, RemoteUnavailable, ToiletFinderError
from domain.models import DEFAULT_RADIUS_M, Place, SearchRequest
from services.http_transport import RequestsTransport, Transport
from services.offline_cache import CachingTransport, get_cache_manager
from services.overpass_client import OverpassClient
from services.preferences import effective_radius
from services.ranking import merge_results
from settings import settings

logger = logging.getLogger(__name__)


class PlaceDirectory:
    """Read-only view of user-submitted places."""

    def list_places(self) -> List[Place]:
        raise NotImplementedError


@dataclass
class SearchOutcome:
    results: List[Place] = field(default_factory=list)
    request: Optional[SearchRequest] = None
    error: Optional[ToiletFinderError] = None
    directory_error: Optional[DirectoryError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def nearest(self) -> Optional[Place]:
        return self.results[0] if self.results else None


class ProximitySearchService:
    def __init__(
        self,
        remote: OverpassClient,
        directory: Optional[PlaceDirectory] = None,
        max_results: Optional[int] = None,
    ):
        self.remote = remote
        self.directory = directory
        self.max_results = max_results or settings.OVERPASS_MAX_RESULTS

    def search(
        self,
        lat: Any,
        lon: Any,
        radius_meters: Any = DEFAULT_RADIUS_M,
        include_likely: bool = False,
        emergency: bool = False,
    ) -> SearchOutcome:
        """Validate raw inputs, then run `find_nearest`."""
        try:
            request = SearchRequest.build(
                lat,
                lon,
                radius_meters=effective_radius(radius_meters, emergency),
                include_likely=include_likely,
                max_results=self.max_results,
            )
        except InvalidInput as exc:
            return SearchOutcome(error=exc)
        return self.find_nearest(request)

    def find_nearest(self, request: SearchRequest) -> SearchOutcome:
        outcome = SearchOutcome(request=request)

        remote_results: List[Place] = []
        try:
            remote_results = self.remote.search(request)
        except RemoteUnavailable as exc:
            outcome.error = exc

        directory_results: List[Place] = []
        if self.directory is not None:
            try:
                directory_results = self.directory.list_places()
            except DirectoryError as exc:
                logger.warning("Place directory unavailable: %s", exc.message)
                outcome.directory_error = exc

        outcome.results = merge_results(request.coordinate, remote_results, directory_results)
        logger.debug(
            "find_nearest: lat=%.6f lon=%.6f radius_m=%.0f likely=%s -> %d results (%d remote, %d directory)",
            request.coordinate.lat,
            request.coordinate.lon,
            request.radius_meters,
            request.include_likely,
            len(outcome.results),
            len(remote_results),
            len(directory_results),
        )
        return outcome


def build_transport() -> Transport:
    """Requests transport, wrapped by the offline cache when enabled."""
    transport: Transport = RequestsTransport(user_agent=settings.OVERPASS_USER_AGENT)
    if settings.OFFLINE_CACHE_ENABLED:
        transport = CachingTransport(transport, get_cache_manager())
    return transport
