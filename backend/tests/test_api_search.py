import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes import search as search_routes
from domain.errors import RemoteUnavailable
from domain.models import Coordinate, Place, PlaceAttributes, PlaceSource
from services.proximity_search import ProximitySearchService


@pytest.fixture
def remote():
    return MagicMock()


@pytest.fixture
def client(remote, monkeypatch):
    directory = MagicMock()
    directory.list_places.return_value = [
        Place(
            id="u_1",
            name="Bar Roma",
            coordinate=Coordinate(45.0, 9.001),
            source=PlaceSource.USER_SUBMITTED,
            attributes=PlaceAttributes(category="User-added place"),
        )
    ]
    monkeypatch.setattr(search_routes, "_search_service", ProximitySearchService(remote, directory))
    return TestClient(app)


def test_search_ranks_remote_and_directory_places(client, remote):
    remote.search.return_value = [
        Place(
            id="osm:node/1",
            name="public toilet",
            coordinate=Coordinate(45.0, 9.0005),
            source=PlaceSource.REMOTE_CONFIRMED,
            attributes=PlaceAttributes(fee="no", access="yes"),
        )
    ]

    response = client.get("/api/search", params={"lat": 45.0, "lon": 9.0, "radius": 800})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["radius_meters"] == 800
    assert [p["id"] for p in body["items"]] == ["osm:node/1", "u_1"]
    assert body["items"][0]["source"] == "remote-confirmed"
    assert body["items"][0]["distance_label"] == "39 m"
    assert body["items"][1]["attributes"]["category"] == "User-added place"


def test_emergency_mode_caps_radius(client, remote):
    remote.search.return_value = []
    body = client.get("/api/search", params={"lat": 45.0, "lon": 9.0, "radius": 2000, "emergency": "true"}).json()
    assert body["radius_meters"] == 300
    assert remote.search.call_args[0][0].radius_meters == 300


def test_remote_outage_is_reported_with_directory_places(client, remote):
    remote.search.side_effect = RemoteUnavailable("Overpass 504: Gateway Timeout")

    body = client.get("/api/search", params={"lat": 45.0, "lon": 9.0}).json()

    assert body["ok"] is False
    assert body["retryable"] is True
    assert body["error"] == "Overpass 504: Gateway Timeout"
    assert [p["id"] for p in body["items"]] == ["u_1"]


def test_out_of_range_coordinates_are_rejected(client, remote):
    response = client.get("/api/search", params={"lat": 95.0, "lon": 9.0})
    assert response.status_code == 400
    assert response.json()["ok"] is False
    remote.search.assert_not_called()


def test_non_numeric_query_is_rejected(client):
    response = client.get("/api/search", params={"lat": "north", "lon": 9.0})
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Invalid lat"}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_search_runs_in_a_worker_thread(client, remote):
    running_loops = []

    def blocking_search(request):
        try:
            running_loops.append(asyncio.get_running_loop())
        except RuntimeError:
            running_loops.append(None)
        return []

    remote.search.side_effect = blocking_search
    assert client.get("/api/search", params={"lat": 45.0, "lon": 9.0}).status_code == 200
    assert running_loops == [None]
