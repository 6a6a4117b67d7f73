"""
Proximity search API route.
"""
import logging
from typing import List, Optional
from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from api.routes.common import bad_request
from db import SessionLocal
from domain.errors import DirectoryError
from domain.models import DEFAULT_RADIUS_M, Place
from repositories import PlacesRepository
from services.distance import format_distance
from services.overpass_client import OverpassClient
from services.proximity_search import PlaceDirectory, ProximitySearchService, build_transport
from services.ranking import directory_places_from_items
from services.scoring import utility_score

router = APIRouter()
places_repo = PlacesRepository()
logger = logging.getLogger(__name__)


class LocalPlaceDirectory(PlaceDirectory):
    """Reads user-submitted places straight from the local database."""

    def list_places(self) -> List[Place]:
        try:
            with SessionLocal() as session:
                items = places_repo.list_places(session)
        except SQLAlchemyError as exc:
            raise DirectoryError(f"Place directory read failed: {exc}") from exc
        return directory_places_from_items([p.to_dict() for p in items])


class PlaceResponse(BaseModel):
    id: str
    name: str
    lat: float
    lon: float
    source: str
    distance_meters: float
    distance_label: str
    utility_score: float
    attributes: dict


class SearchResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
    retryable: bool = False
    directory_error: Optional[str] = None
    radius_meters: Optional[float] = None
    items: List[PlaceResponse] = Field(default_factory=list)


def place_to_response(place: Place) -> PlaceResponse:
    """Convert a ranked Place to API response."""
    return PlaceResponse(
        id=place.id,
        name=place.name,
        lat=place.coordinate.lat,
        lon=place.coordinate.lon,
        source=place.source.value,
        distance_meters=round(place.distance_meters, 1),
        distance_label=format_distance(place.distance_meters),
        utility_score=round(utility_score(place), 2),
        attributes=place.attributes.to_dict(),
    )


_search_service: Optional[ProximitySearchService] = None


def get_search_service() -> ProximitySearchService:
    global _search_service
    if _search_service is None:
        _search_service = ProximitySearchService(
            remote=OverpassClient(transport=build_transport()),
            directory=LocalPlaceDirectory(),
        )
    return _search_service


@router.get("", response_model=SearchResponse)
def search(
    lat: float,
    lon: float,
    radius: float = DEFAULT_RADIUS_M,
    includeLikely: bool = False,
    emergency: bool = False,
):
    """Nearest toilets around (lat, lon), merged with user-submitted places."""
    outcome = get_search_service().search(
        lat, lon, radius_meters=radius, include_likely=includeLikely, emergency=emergency
    )
    if outcome.request is None:
        return bad_request(outcome.error.message if outcome.error else "Invalid input")
    return SearchResponse(
        ok=outcome.ok,
        error=outcome.error.message if outcome.error else None,
        retryable=bool(outcome.error and outcome.error.retryable),
        directory_error=outcome.directory_error.message if outcome.directory_error else None,
        radius_meters=outcome.request.radius_meters,
        items=[place_to_response(p) for p in outcome.results],
    )
