"""
Overpass (OpenStreetMap) search for public toilets around a position.

The same query is served by several independently operated mirrors, all of
them flaky under load. `OverpassClient.search` walks an explicit schedule:

- query shape: the full query (toilets plus "likely" venues) first, then a
  toilets-only fallback;
- two attempts per shape, with a growing server-side timeout and a short pause
  before the second one;
- every mirror in order within an attempt, stopping at the first one that
  returns results.

Only rate limiting (429), gateway timeouts (504) and transport failures are
worth another attempt. Any other status means the query shape itself was
rejected, so the schedule jumps to the next shape without pausing.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from domain.errors import InvalidInput, RemoteUnavailable, TransportError
from domain.models import (
    LIKELY_SUFFIX,
    Coordinate,
    Place,
    PlaceAttributes,
    PlaceSource,
    SearchRequest,
    clamp_radius,
)
from services.http_transport import HttpRequest, RequestsTransport, Transport
from settings import settings

logger = logging.getLogger(__name__)

DEFAULT_TOILET_NAME = "public toilet"
CONFIRMED_LABEL = "Public toilet"
RETRYABLE_STATUSES = (429, 504)

# (tag key, tag value, label)
LIKELY_CATEGORIES: Tuple[Tuple[str, str, str], ...] = (
    ("amenity", "bar", "Bar"),
    ("amenity", "pub", "Pub"),
    ("amenity", "cafe", "Cafe"),
    ("amenity", "restaurant", "Restaurant"),
    ("amenity", "fast_food", "Fast food"),
    ("amenity", "bus_station", "Bus station"),
    ("railway", "station", "Train station"),
    ("aeroway", "aerodrome", "Airport"),
    ("shop", "mall", "Shopping mall"),
    ("shop", "supermarket", "Supermarket"),
)

OVERPASS_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded;charset=UTF-8",
    "Accept": "application/json",
}


class QueryShape(str, Enum):
    FULL = "full"
    TOILETS_ONLY = "toilets-only"


@dataclass(frozen=True)
class Attempt:
    server_timeout_sec: int
    pause_sec: float = 0.0


ATTEMPTS: Tuple[Attempt, ...] = (
    Attempt(server_timeout_sec=35),
    Attempt(server_timeout_sec=45, pause_sec=0.65),
)


def build_query(
    coordinate: Coordinate,
    radius_meters: float,
    server_timeout_sec: int,
    include_likely: bool = False,
) -> str:
    """Overpass QL for nodes/ways/relations around a point, with centers for areas."""
    radius = int(round(clamp_radius(radius_meters)))
    around = f"nwr(around:{radius},{coordinate.lat:.6f},{coordinate.lon:.6f})"
    selectors = [f'{around}["amenity"="toilets"];']
    if include_likely:
        selectors.extend(f'{around}["{key}"="{value}"];' for key, value, _ in LIKELY_CATEGORIES)
    body = "\n  ".join(selectors)
    return f"[out:json][timeout:{server_timeout_sec}];\n(\n  {body}\n);\nout center tags qt;"


def is_retryable(error: TransportError) -> bool:
    return error.status is None or error.status in RETRYABLE_STATUSES


# --- parsing -------------------------------------------------------------


def _tag(tags: Dict[str, Any], key: str) -> str:
    value = tags.get(key)
    return value.strip() if isinstance(value, str) else ""


def _pick_center(element: Dict[str, Any]) -> Optional[Coordinate]:
    center = element.get("center") if isinstance(element.get("center"), dict) else {}
    lat = element.get("lat", center.get("lat"))
    lon = element.get("lon", center.get("lon"))
    try:
        return Coordinate.from_raw(lat, lon)
    except InvalidInput:
        return None


def _classify(tags: Dict[str, Any]) -> Optional[Tuple[PlaceSource, str]]:
    if _tag(tags, "amenity") == "toilets":
        return PlaceSource.REMOTE_CONFIRMED, CONFIRMED_LABEL
    for key, value, label in LIKELY_CATEGORIES:
        if _tag(tags, key) == value:
            return PlaceSource.REMOTE_LIKELY, label
    return None


def _address(tags: Dict[str, Any]) -> str:
    full = _tag(tags, "addr:full")
    if full:
        return full
    street = _tag(tags, "addr:street")
    number = _tag(tags, "addr:housenumber")
    return f"{street} {number}".strip() if street else ""


def parse_element(element: Any) -> Optional[Place]:
    """Turn one Overpass element into a Place, or None when it is unusable."""
    if not isinstance(element, dict):
        return None
    tags = element.get("tags") if isinstance(element.get("tags"), dict) else {}
    kind = _classify(tags)
    if kind is None:
        return None
    el_type = element.get("type")
    el_id = element.get("id")
    if not el_type or el_id is None:
        return None
    center = _pick_center(element)
    if center is None:
        return None

    source, label = kind
    likely = source is PlaceSource.REMOTE_LIKELY
    place_id = f"osm:{el_type}/{el_id}" + (LIKELY_SUFFIX if likely else "")

    def toilet_tag(key: str) -> str:
        # on a cafe or station the plain tag describes the venue, not its toilets
        if likely:
            return _tag(tags, f"toilets:{key}")
        return _tag(tags, key) or _tag(tags, f"toilets:{key}")

    attributes = PlaceAttributes(
        opening_hours=_tag(tags, "opening_hours"),
        fee=toilet_tag("fee"),
        access=toilet_tag("access"),
        wheelchair=toilet_tag("wheelchair"),
        changing_table=_tag(tags, "changing_table") or _tag(tags, "toilets:changing_table"),
        unisex=_tag(tags, "unisex") if not likely else "",
        address=_address(tags),
        notes=_tag(tags, "description"),
        category=label,
    )
    name = _tag(tags, "name") or (DEFAULT_TOILET_NAME if not likely else label)
    return Place(id=place_id, name=name, coordinate=center, source=source, attributes=attributes)


def parse_elements(elements: Any) -> List[Place]:
    """Parse, skip malformed features and collapse duplicates.

    The first occurrence of an id wins, and a confirmed place suppresses the
    likely entry derived from the same feature.
    """
    seen: Dict[str, Place] = {}
    for element in elements if isinstance(elements, list) else []:
        place = parse_element(element)
        if place is not None and place.id not in seen:
            seen[place.id] = place
    confirmed = {p.identity for p in seen.values() if p.is_confirmed}
    return [p for p in seen.values() if not (p.is_likely and p.identity in confirmed)]


# --- schedule ------------------------------------------------------------


@dataclass(frozen=True)
class Step:
    shape: QueryShape
    attempt_index: int
    attempt: Attempt
    endpoint_index: int

    @property
    def pause_sec(self) -> float:
        return self.attempt.pause_sec if self.endpoint_index == 0 else 0.0


class SearchSchedule:
    """
    State machine over (query shape, attempt, endpoint).

    Drive it with `next_step()` and report each outcome with `record_results`,
    `record_empty` or `record_failure`. It ends when results arrive, when an
    attempt finished with an empty (but successful) answer, or when every
    shape is exhausted.
    """

    def __init__(
        self,
        shapes: Sequence[QueryShape],
        endpoint_count: int,
        attempts: Sequence[Attempt] = ATTEMPTS,
    ):
        if endpoint_count < 1:
            raise ValueError("At least one endpoint is required")
        self.shapes = tuple(shapes)
        self.endpoint_count = endpoint_count
        self.attempts = tuple(attempts)
        self.shape_index = 0
        self.attempt_index = 0
        self.endpoint_index = 0
        self.done = not self.shapes or not self.attempts
        self.succeeded = False
        self.answered_empty = False
        self.last_reason: Optional[str] = None
        self._rejected = False  # permanent failure seen in the current attempt

    def next_step(self) -> Optional[Step]:
        if self.done:
            return None
        if self.endpoint_index >= self.endpoint_count:
            self._finish_attempt()
            if self.done:
                return None
        return Step(
            shape=self.shapes[self.shape_index],
            attempt_index=self.attempt_index,
            attempt=self.attempts[self.attempt_index],
            endpoint_index=self.endpoint_index,
        )

    def record_results(self) -> None:
        self.succeeded = True
        self.done = True

    def record_empty(self) -> None:
        self.answered_empty = True
        self.endpoint_index += 1

    def record_failure(self, error: TransportError) -> None:
        self.last_reason = error.message or str(error)
        if not is_retryable(error):
            self._rejected = True
        self.endpoint_index += 1

    def _finish_attempt(self) -> None:
        if self.answered_empty:
            self.done = True
            return
        if self._rejected or self.attempt_index + 1 >= len(self.attempts):
            self._next_shape()
        else:
            self.attempt_index += 1
        self.endpoint_index = 0
        self._rejected = False

    def _next_shape(self) -> None:
        self.shape_index += 1
        self.attempt_index = 0
        if self.shape_index >= len(self.shapes):
            self.done = True


class OverpassClient:
    """Search public toilets (and optionally likely venues) around a point."""

    def __init__(
        self,
        endpoints: Optional[Iterable[str]] = None,
        transport: Optional[Transport] = None,
        hard_timeout_sec: Optional[float] = None,
        attempts: Sequence[Attempt] = ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.endpoints = list(endpoints or settings.OVERPASS_ENDPOINTS)
        if not self.endpoints:
            raise ValueError("OverpassClient needs at least one endpoint")
        self.transport = transport or RequestsTransport(user_agent=settings.OVERPASS_USER_AGENT)
        self.hard_timeout_sec = hard_timeout_sec or settings.OVERPASS_HARD_TIMEOUT_SEC
        self.attempts = tuple(attempts)
        self._sleep = sleep

    def search(self, request: SearchRequest) -> List[Place]:
        """Return parsed places, capped at request.max_results.

        Raises RemoteUnavailable once every shape, attempt and endpoint failed.
        """
        shapes = (QueryShape.FULL, QueryShape.TOILETS_ONLY) if request.include_likely else (QueryShape.TOILETS_ONLY,)
        schedule = SearchSchedule(shapes, len(self.endpoints), self.attempts)

        step = schedule.next_step()
        while step is not None:
            if step.pause_sec:
                self._sleep(step.pause_sec)
            endpoint = self.endpoints[step.endpoint_index]
            query = build_query(
                request.coordinate,
                request.radius_meters,
                step.attempt.server_timeout_sec,
                include_likely=step.shape is QueryShape.FULL,
            )
            try:
                places = self._fetch(endpoint, query)
            except TransportError as exc:
                logger.warning(
                    "Overpass %s attempt %d failed on %s: %s",
                    step.shape.value,
                    step.attempt_index + 1,
                    endpoint,
                    exc.message,
                )
                schedule.record_failure(exc)
            else:
                if places:
                    schedule.record_results()
                    logger.debug(
                        "Overpass %s attempt %d: %d places from %s",
                        step.shape.value,
                        step.attempt_index + 1,
                        len(places),
                        endpoint,
                    )
                    return places[: request.max_results]
                schedule.record_empty()
            step = schedule.next_step()

        if schedule.answered_empty:
            return []
        reason = schedule.last_reason or "Geodata service unavailable. Try again shortly."
        logger.warning("Overpass search exhausted all endpoints: %s", reason)
        raise RemoteUnavailable(reason)

    def _fetch(self, endpoint: str, query: str) -> List[Place]:
        request = HttpRequest(
            method="POST",
            url=endpoint,
            body=urlencode({"data": query}).encode("utf-8"),
            headers=dict(OVERPASS_HEADERS),
        )
        resp = self.transport.send(request, timeout=self.hard_timeout_sec)
        if not resp.ok:
            detail = resp.text(220).strip() or f"HTTP {resp.status}"
            raise TransportError(f"Overpass {resp.status}: {detail}", status=resp.status)
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError(f"Overpass returned invalid JSON from {endpoint}") from exc
        elements = data.get("elements") if isinstance(data, dict) else None
        return parse_elements(elements)
