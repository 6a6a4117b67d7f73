"""
Boundary validation for place directory payloads.

Raises ValidationError with a short message that is returned to the client
verbatim in a 400 response.
"""
import math
import time
from datetime import datetime, timezone
from typing import Any, Dict

from domain.errors import InvalidInput, ValidationError
from domain.models import MAX_REVIEW_TEXT, Coordinate, Review, SubmittedPlace, clamp_stars

# latest representable epoch-ms date (year 275760), well inside BigInteger
MAX_EPOCH_MS = 8_640_000_000_000_000


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_place_payload(payload: Any) -> SubmittedPlace:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON")
    place = payload.get("place")
    if not isinstance(place, dict):
        raise ValidationError("Missing place")

    for key in ("id", "name", "address", "dateISO"):
        if not _is_non_empty_string(place.get(key)):
            raise ValidationError(f"Missing {key}")

    lat, lon = place.get("lat"), place.get("lon")
    if not _is_number(lat) or not _is_number(lon):
        raise ValidationError("Invalid coordinates")
    try:
        Coordinate.from_raw(lat, lon)
    except InvalidInput as exc:
        raise ValidationError("Invalid coordinates") from exc

    photo = place.get("photoBase64")
    if photo is not None and not isinstance(photo, str):
        raise ValidationError("Invalid photo")
    notes = place.get("notes")

    return SubmittedPlace(
        id=place["id"],
        name=place["name"].strip(),
        address=place["address"].strip(),
        date_iso=place["dateISO"],
        lat=float(lat),
        lon=float(lon),
        notes=notes.strip() if isinstance(notes, str) else "",
        photo_base64=photo or "",
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def validate_delete_payload(payload: Any) -> str:
    place_id = payload.get("id") if isinstance(payload, dict) else None
    if not _is_non_empty_string(place_id):
        raise ValidationError("Missing id")
    return place_id


def build_review(payload: Any) -> Review:
    """Normalize a review payload: stars rounded into [1, 5], text capped at 500 chars."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON")
    place_id = str(payload.get("placeId") or "")
    if not place_id:
        raise ValidationError("placeId missing")

    now_ms = int(time.time() * 1000)
    created_at = payload.get("createdAt")
    if not _is_number(created_at) or not 0 < created_at <= MAX_EPOCH_MS:
        created_at = now_ms

    return Review(
        id=str(payload.get("id") or f"r_{now_ms}"),
        place_id=place_id,
        place_name=str(payload.get("placeName") or ""),
        stars=clamp_stars(payload.get("stars")),
        text=str(payload.get("text") or "")[:MAX_REVIEW_TEXT],
        created_at=int(created_at),
    )
