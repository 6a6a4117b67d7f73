import json

import pytest

from domain.errors import DirectoryError, TransportError
from domain.models import PlaceSource
from services.directory_client import PlaceDirectoryClient, average_stars
from services.http_transport import HttpResponse, Transport


class RecordingTransport(Transport):
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def send(self, request, timeout):
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.response


def test_list_places_returns_user_submitted_places():
    transport = RecordingTransport(
        HttpResponse.from_json({"ok": True, "items": [{"id": "p1", "name": "Bar Roma", "lat": 45.0, "lon": 9.0}]})
    )
    client = PlaceDirectoryClient("http://localhost:8000", transport=transport)
    places = client.list_places()
    assert transport.requests[0].url == "http://localhost:8000/api/places"
    assert [p.id for p in places] == ["p1"]
    assert places[0].source is PlaceSource.USER_SUBMITTED


def test_add_place_posts_json_body():
    transport = RecordingTransport(HttpResponse.from_json({"ok": True, "items": [{"id": "p1"}]}))
    client = PlaceDirectoryClient("http://localhost:8000/", transport=transport)
    items = client.add_place({"id": "p1"})
    request = transport.requests[0]
    assert request.method == "POST"
    assert request.url == "http://localhost:8000/api/places/add"
    assert json.loads(request.body) == {"place": {"id": "p1"}}
    assert items == [{"id": "p1"}]


def test_reviews_query_string_and_empty_place_id():
    transport = RecordingTransport(HttpResponse.from_json({"ok": True, "items": []}))
    client = PlaceDirectoryClient("http://localhost:8000", transport=transport)
    assert client.list_reviews("") == []
    assert transport.requests == []
    client.list_reviews("osm:node/1")
    assert transport.requests[0].url == "http://localhost:8000/api/reviews?placeId=osm%3Anode%2F1"


@pytest.mark.parametrize(
    "transport",
    [
        RecordingTransport(error=TransportError("offline")),
        RecordingTransport(HttpResponse(status=500, body=b"boom")),
        RecordingTransport(HttpResponse(status=200, body=b"not json")),
    ],
)
def test_failures_become_directory_errors(transport):
    client = PlaceDirectoryClient("http://localhost:8000", transport=transport)
    with pytest.raises(DirectoryError):
        client.list_places()


def test_average_stars():
    assert average_stars([]) == 0.0
    assert average_stars([{"stars": 5}, {"stars": 2}]) == 3.5
