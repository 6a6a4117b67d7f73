import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes import reviews as reviews_routes
from repositories import ReviewsRepository


@pytest.fixture
def client(session_factory, monkeypatch):
    monkeypatch.setattr(reviews_routes, "SessionLocal", session_factory)
    return TestClient(app)


def test_missing_place_id_lists_nothing(client):
    response = client.get("/api/reviews")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "items": []}


def test_add_and_list_most_recent_first(client):
    client.post("/api/reviews/add", json={"id": "r1", "placeId": "osm:node/1", "stars": 2, "createdAt": 1000})
    client.post("/api/reviews/add", json={"id": "r2", "placeId": "osm:node/1", "stars": 4.6, "createdAt": 2000})
    client.post("/api/reviews/add", json={"id": "r3", "placeId": "osm:node/2", "stars": 5, "createdAt": 3000})

    response = client.get("/api/reviews", params={"placeId": "osm:node/1"})
    items = response.json()["items"]

    assert [r["id"] for r in items] == ["r2", "r1"]
    assert items[0]["stars"] == 5
    assert items[0]["placeId"] == "osm:node/1"


def test_add_normalizes_stars_and_text(client):
    response = client.post(
        "/api/reviews/add", json={"placeId": "p", "stars": -3, "text": "y" * 900, "placeName": "Bar Roma"}
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    item = client.get("/api/reviews", params={"placeId": "p"}).json()["items"][0]
    assert item["stars"] == 1
    assert len(item["text"]) == 500
    assert item["placeName"] == "Bar Roma"
    assert item["id"].startswith("r_")


def test_reviews_are_capped_per_place(client, monkeypatch):
    monkeypatch.setattr(reviews_routes, "reviews_repo", ReviewsRepository(max_per_place=2))
    for i in range(4):
        client.post("/api/reviews/add", json={"id": f"r{i}", "placeId": "p", "createdAt": 1000 + i})

    items = client.get("/api/reviews", params={"placeId": "p"}).json()["items"]
    assert [r["id"] for r in items] == ["r3", "r2"]


@pytest.mark.parametrize("body", [{"stars": 4}, {"placeId": ""}])
def test_add_requires_place_id(client, body):
    response = client.post("/api/reviews/add", json=body)
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "placeId missing"}


def test_huge_created_at_is_stored_as_now(client):
    response = client.post("/api/reviews/add", json={"id": "r1", "placeId": "p1", "stars": 4, "createdAt": 1e30})
    assert response.status_code == 200

    item = client.get("/api/reviews", params={"placeId": "p1"}).json()["items"][0]
    assert item["id"] == "r1"
    assert item["createdAt"] < 1e13


def test_newest_insert_survives_eviction_even_with_old_timestamp(client, monkeypatch):
    monkeypatch.setattr(reviews_routes, "reviews_repo", ReviewsRepository(max_per_place=2))
    client.post("/api/reviews/add", json={"id": "r1", "placeId": "p", "createdAt": 5000})
    client.post("/api/reviews/add", json={"id": "r2", "placeId": "p", "createdAt": 6000})
    client.post("/api/reviews/add", json={"id": "r3", "placeId": "p", "createdAt": 1000})

    items = client.get("/api/reviews", params={"placeId": "p"}).json()["items"]
    assert [r["id"] for r in items] == ["r3", "r2"]
