"""
Merge remote search results with user-submitted places into one ranked list.

Ordering: distance ascending, then utility score descending, then name
(accent- and case-insensitive). Python's sort is stable, so places equal on
all three keys keep their input order: remote first, then directory.
"""
from __future__ import annotations

import logging
import math
import unicodedata
from typing import Any, Dict, Iterable, List, Optional, Sequence

from domain.errors import InvalidInput
from domain.models import Coordinate, Place, PlaceAttributes, PlaceSource
from services.distance import distance_meters
from services.scoring import utility_score

logger = logging.getLogger(__name__)

DEFAULT_USER_PLACE_NAME = "user-added place"


def name_sort_key(name: Optional[str]) -> str:
    """Collation key that ignores case and diacritics ("École" sorts with "ecole")."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def rank_key(place: Place) -> tuple:
    """Sort key for an annotated place."""
    return (place.distance_meters, -utility_score(place), name_sort_key(place.name))


def _collapse_duplicates(places: Sequence[Place]) -> List[Place]:
    by_id: Dict[str, Place] = {}
    for place in places:
        if place.id not in by_id:
            by_id[place.id] = place
    confirmed = {p.identity for p in by_id.values() if p.is_confirmed}
    return [p for p in by_id.values() if not (p.is_likely and p.identity in confirmed)]


def merge_results(
    user_coordinate: Coordinate,
    remote_results: Iterable[Place],
    directory_results: Iterable[Place],
) -> List[Place]:
    """Annotate, filter, deduplicate and sort. Inputs are left untouched."""
    annotated: List[Place] = []
    dropped = 0
    for group in (remote_results, directory_results):
        for place in group or []:
            dist = distance_meters(user_coordinate, place.coordinate)
            if not math.isfinite(dist):
                dropped += 1
                continue
            annotated.append(place.with_distance(dist))

    merged = _collapse_duplicates(annotated)
    if dropped:
        logger.debug("merge_results: dropped %d places without a usable position", dropped)
    return sorted(merged, key=rank_key)


def directory_place_from_item(item: Any) -> Optional[Place]:
    """Normalize one place directory item into a user-submitted Place."""
    if not isinstance(item, dict):
        return None
    place_id = item.get("id")
    if not isinstance(place_id, str) or not place_id.strip():
        return None
    try:
        coordinate = Coordinate.from_raw(item.get("lat"), item.get("lon"))
    except InvalidInput:
        coordinate = None

    def text(key: str) -> str:
        value = item.get(key)
        return value.strip() if isinstance(value, str) else ""

    return Place(
        id=place_id,
        name=text("name") or DEFAULT_USER_PLACE_NAME,
        coordinate=coordinate,
        source=PlaceSource.USER_SUBMITTED,
        attributes=PlaceAttributes(
            address=text("address"),
            notes=text("notes"),
            category="User-added place",
            photo_base64=text("photoBase64"),
        ),
    )


def directory_places_from_items(items: Any) -> List[Place]:
    places = []
    for item in items if isinstance(items, list) else []:
        place = directory_place_from_item(item)
        if place is not None:
            places.append(place)
    return places
