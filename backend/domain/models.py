"""
Core domain models for the toilet finder.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional
import math
import time

from domain.errors import InvalidInput

MIN_RADIUS_M = 50
MAX_RADIUS_M = 5000
DEFAULT_RADIUS_M = 800
EMERGENCY_RADIUS_M = 300

DEFAULT_MAX_RESULTS = 300
MIN_MAX_RESULTS = 50
MAX_MAX_RESULTS = 800

LIKELY_SUFFIX = ":likely"

MAX_REVIEW_TEXT = 500


def _to_finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def clamp_radius(radius_meters: Any) -> float:
    """Clamp a radius into [50, 5000]; anything non-numeric falls back to the minimum."""
    value = _to_finite(radius_meters)
    if value is None:
        return float(MIN_RADIUS_M)
    return float(max(MIN_RADIUS_M, min(MAX_RADIUS_M, value)))


def clamp_max_results(max_results: Any) -> int:
    value = _to_finite(max_results)
    if not value:
        return DEFAULT_MAX_RESULTS
    return int(max(MIN_MAX_RESULTS, min(MAX_MAX_RESULTS, value)))


def clamp_stars(stars: Any) -> int:
    value = _to_finite(stars)
    if value is None:
        return 5
    # halves round up
    return int(max(1, min(5, math.floor(value + 0.5))))


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 position. Immutable once read."""
    lat: float
    lon: float

    @classmethod
    def from_raw(cls, lat: Any, lon: Any) -> "Coordinate":
        la = _to_finite(lat)
        lo = _to_finite(lon)
        if la is None or lo is None:
            raise InvalidInput("Invalid coordinates.")
        if not -90.0 <= la <= 90.0 or not -180.0 <= lo <= 180.0:
            raise InvalidInput("Coordinates out of range.")
        return cls(lat=la, lon=lo)


class PlaceSource(str, Enum):
    """Discriminator for the three kinds of place the ranking handles."""
    REMOTE_CONFIRMED = "remote-confirmed"
    REMOTE_LIKELY = "remote-likely"
    USER_SUBMITTED = "user-submitted"


@dataclass(frozen=True)
class PlaceAttributes:
    """Optional descriptive tags, kept as the raw (trimmed) strings."""
    opening_hours: str = ""
    fee: str = ""
    access: str = ""
    wheelchair: str = ""
    changing_table: str = ""
    unisex: str = ""
    address: str = ""
    notes: str = ""
    category: str = ""  # human label, e.g. "Public toilet", "Cafe"
    photo_base64: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "opening_hours": self.opening_hours,
            "fee": self.fee,
            "access": self.access,
            "wheelchair": self.wheelchair,
            "changing_table": self.changing_table,
            "unisex": self.unisex,
            "address": self.address,
            "notes": self.notes,
            "category": self.category,
            "photo_base64": self.photo_base64,
        }


@dataclass(frozen=True)
class Place:
    """
    A candidate place in a ranked list.

    `source` is the variant tag. Remote places are re-fetched per search,
    user-submitted ones come from the place directory. `distance_meters` is
    only set on the copies produced by a ranking pass.
    """
    id: str
    name: str
    coordinate: Optional[Coordinate]
    source: PlaceSource
    attributes: PlaceAttributes = field(default_factory=PlaceAttributes)
    distance_meters: Optional[float] = None

    @property
    def is_confirmed(self) -> bool:
        return self.source is PlaceSource.REMOTE_CONFIRMED

    @property
    def is_likely(self) -> bool:
        return self.source is PlaceSource.REMOTE_LIKELY

    @property
    def is_user_submitted(self) -> bool:
        return self.source is PlaceSource.USER_SUBMITTED

    @property
    def identity(self) -> str:
        """Underlying feature identity, shared by the confirmed and likely forms."""
        if self.id.endswith(LIKELY_SUFFIX):
            return self.id[: -len(LIKELY_SUFFIX)]
        return self.id

    def with_distance(self, distance_meters: float) -> "Place":
        return replace(self, distance_meters=distance_meters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "lat": self.coordinate.lat if self.coordinate else None,
            "lon": self.coordinate.lon if self.coordinate else None,
            "source": self.source.value,
            "attributes": self.attributes.to_dict(),
            "distance_meters": self.distance_meters,
        }


@dataclass(frozen=True)
class SearchRequest:
    """A validated proximity query. Build it with `SearchRequest.build`."""
    coordinate: Coordinate
    radius_meters: float = float(DEFAULT_RADIUS_M)
    include_likely: bool = False
    max_results: int = DEFAULT_MAX_RESULTS

    @classmethod
    def build(
        cls,
        lat: Any,
        lon: Any,
        radius_meters: Any = DEFAULT_RADIUS_M,
        include_likely: bool = False,
        max_results: Any = DEFAULT_MAX_RESULTS,
    ) -> "SearchRequest":
        return cls(
            coordinate=Coordinate.from_raw(lat, lon),
            radius_meters=clamp_radius(radius_meters),
            include_likely=bool(include_likely),
            max_results=clamp_max_results(max_results),
        )


@dataclass
class SubmittedPlace:
    """A place stored in the directory by a user."""
    id: str
    name: str
    address: str
    date_iso: str
    lat: float
    lon: float
    notes: str = ""
    photo_base64: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "notes": self.notes,
            "dateISO": self.date_iso,
            "photoBase64": self.photo_base64,
            "lat": self.lat,
            "lon": self.lon,
            "createdAt": self.created_at,
        }


@dataclass
class Review:
    """A star rating with optional text for one place."""
    id: str
    place_id: str
    place_name: str = ""
    stars: int = 5
    text: str = ""
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "placeId": self.place_id,
            "placeName": self.place_name,
            "stars": self.stars,
            "text": self.text,
            "createdAt": self.created_at,
        }
