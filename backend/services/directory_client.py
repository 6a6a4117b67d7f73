"""
HTTP client for the place directory (user-submitted places and reviews).

Failures surface as DirectoryError; callers keep their previous state.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from domain.errors import DirectoryError, TransportError
from domain.models import Place
from services.http_transport import HttpRequest, HttpResponse, RequestsTransport, Transport
from services.ranking import directory_places_from_items
from settings import settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 15.0
JSON_HEADERS = {"Accept": "application/json"}


class PlaceDirectoryClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[Transport] = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ):
        self.base_url = (base_url or settings.APP_ORIGIN).rstrip("/") + "/api"
        self.transport = transport or RequestsTransport()
        self.timeout_sec = timeout_sec

    def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = dict(JSON_HEADERS)
        body = b""
        if payload is not None:
            headers["Content-Type"] = "application/json"
            body = json.dumps(payload).encode("utf-8")
        request = HttpRequest(method=method, url=f"{self.base_url}/{path}", body=body, headers=headers)
        try:
            resp: HttpResponse = self.transport.send(request, timeout=self.timeout_sec)
        except TransportError as exc:
            raise DirectoryError(f"Place directory unreachable: {exc.message}") from exc
        if not resp.ok:
            raise DirectoryError(f"HTTP {resp.status} on {request.url} {resp.text(120)}".strip())
        try:
            data = resp.json()
        except ValueError as exc:
            raise DirectoryError(f"Invalid JSON from {request.url}") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _items(data: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = data.get("items")
        return items if isinstance(items, list) else []

    def list_place_items(self) -> List[Dict[str, Any]]:
        return self._items(self._call("GET", "places"))

    def list_places(self) -> List[Place]:
        """User-submitted places as Place records, ready for ranking."""
        return directory_places_from_items(self.list_place_items())

    def add_place(self, place: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._items(self._call("POST", "places/add", {"place": place}))

    def delete_place(self, place_id: str) -> List[Dict[str, Any]]:
        return self._items(self._call("POST", "places/delete", {"id": place_id}))

    def list_reviews(self, place_id: str) -> List[Dict[str, Any]]:
        if not place_id:
            return []
        return self._items(self._call("GET", "reviews?" + urlencode({"placeId": place_id})))

    def add_review(self, review: Dict[str, Any]) -> None:
        self._call("POST", "reviews/add", review)


def average_stars(reviews: List[Dict[str, Any]]) -> float:
    """Mean star rating; 0 when there are no reviews."""
    if not reviews:
        return 0.0
    total = 0.0
    for review in reviews:
        try:
            total += float(review.get("stars") or 0)
        except (TypeError, ValueError, AttributeError):
            continue
    return total / len(reviews)
