import json
from urllib.parse import parse_qs

import pytest

from domain.errors import RemoteUnavailable, TransportError
from domain.models import SearchRequest
from services.http_transport import HttpResponse, Transport
from services.overpass_client import (
    ATTEMPTS,
    OverpassClient,
    QueryShape,
    SearchSchedule,
)

ENDPOINTS = ["https://mirror-a.test/api/interpreter", "https://mirror-b.test/api/interpreter"]


def _elements(*ids):
    return {
        "elements": [
            {"type": "node", "id": i, "lat": 45.0 + i / 10000, "lon": 9.0, "tags": {"amenity": "toilets"}}
            for i in ids
        ]
    }


class ScriptedTransport(Transport):
    """Answers each call with the next scripted item (HttpResponse, dict payload or exception)."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def send(self, request, timeout):
        query = parse_qs(request.body.decode("utf-8"))["data"][0]
        self.calls.append({"url": request.url, "query": query, "timeout": timeout})
        item = self.script.pop(0) if self.script else HttpResponse(status=504, body=b"Gateway Timeout")
        if isinstance(item, Exception):
            raise item
        if isinstance(item, dict):
            return HttpResponse(status=200, body=json.dumps(item).encode("utf-8"))
        return item


def _client(transport, sleeps=None):
    return OverpassClient(
        endpoints=ENDPOINTS,
        transport=transport,
        hard_timeout_sec=55,
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
    )


def _is_full(call):
    return '"amenity"="cafe"' in call["query"]


def test_first_endpoint_success_short_circuits():
    transport = ScriptedTransport([_elements(1, 2)])
    places = _client(transport).search(SearchRequest.build(45.0, 9.0, 800))
    assert [p.id for p in places] == ["osm:node/1", "osm:node/2"]
    assert len(transport.calls) == 1
    assert transport.calls[0]["timeout"] == 55
    assert "[timeout:35]" in transport.calls[0]["query"]


def test_falls_through_to_next_endpoint():
    transport = ScriptedTransport([HttpResponse(status=429, body=b"Too Many Requests"), _elements(1)])
    places = _client(transport).search(SearchRequest.build(45.0, 9.0, 800))
    assert len(places) == 1
    assert [c["url"] for c in transport.calls] == ENDPOINTS


def test_gateway_timeouts_everywhere_fall_back_then_fail():
    sleeps = []
    transport = ScriptedTransport([])  # every call answers 504
    with pytest.raises(RemoteUnavailable) as excinfo:
        _client(transport, sleeps).search(SearchRequest.build(45.0, 9.0, 800, include_likely=True))

    calls = transport.calls
    # two attempts x two endpoints for the full query, then the same for toilets-only
    assert len(calls) == 8
    assert all(_is_full(c) for c in calls[:4])
    assert not any(_is_full(c) for c in calls[4:])
    assert ["[timeout:35]" in c["query"] for c in calls[:4]] == [True, True, False, False]
    assert ["[timeout:45]" in c["query"] for c in calls[4:]] == [False, False, True, True]
    assert sleeps == [ATTEMPTS[1].pause_sec, ATTEMPTS[1].pause_sec]
    assert "504" in excinfo.value.reason
    assert excinfo.value.retryable


def test_fallback_query_can_rescue_the_search():
    transport = ScriptedTransport([HttpResponse(status=504)] * 4 + [_elements(3)])
    places = _client(transport).search(SearchRequest.build(45.0, 9.0, 800, include_likely=True))
    assert [p.id for p in places] == ["osm:node/3"]
    assert not _is_full(transport.calls[-1])


def test_permanent_rejection_skips_remaining_attempts_of_that_shape():
    sleeps = []
    transport = ScriptedTransport(
        [
            HttpResponse(status=400, body=b"runtime error: bad query"),
            HttpResponse(status=504),
            _elements(4),
        ]
    )
    places = _client(transport, sleeps).search(SearchRequest.build(45.0, 9.0, 800, include_likely=True))

    assert [p.id for p in places] == ["osm:node/4"]
    assert len(transport.calls) == 3
    # the full query was tried once per endpoint, then straight to the fallback
    assert _is_full(transport.calls[0]) and _is_full(transport.calls[1])
    assert not _is_full(transport.calls[2])
    assert "[timeout:35]" in transport.calls[2]["query"]
    assert sleeps == []


def test_permanent_rejection_without_fallback_gives_up_immediately():
    transport = ScriptedTransport([HttpResponse(status=400, body=b"bad"), HttpResponse(status=400, body=b"bad")])
    with pytest.raises(RemoteUnavailable) as excinfo:
        _client(transport).search(SearchRequest.build(45.0, 9.0, 800))
    assert len(transport.calls) == 2
    assert "400" in excinfo.value.reason


def test_transport_errors_are_retried():
    transport = ScriptedTransport(
        [TransportError("connection reset"), TransportError("hard timeout"), _elements(5)]
    )
    places = _client(transport).search(SearchRequest.build(45.0, 9.0, 800))
    assert len(places) == 1
    assert "[timeout:45]" in transport.calls[2]["query"]


def test_invalid_json_counts_as_transient():
    transport = ScriptedTransport([HttpResponse(status=200, body=b"<html>busy</html>"), _elements(6)])
    assert len(_client(transport).search(SearchRequest.build(45.0, 9.0, 800))) == 1


def test_empty_answer_is_returned_without_more_attempts():
    transport = ScriptedTransport([{"elements": []}, {"elements": []}])
    places = _client(transport).search(SearchRequest.build(45.0, 9.0, 800, include_likely=True))
    assert places == []
    assert len(transport.calls) == 2


def test_results_are_capped():
    transport = ScriptedTransport([_elements(*range(1, 121))])
    request = SearchRequest.build(45.0, 9.0, 800, max_results=60)
    assert len(_client(transport).search(request)) == 60


def test_schedule_walks_shapes_attempts_and_endpoints():
    schedule = SearchSchedule([QueryShape.FULL, QueryShape.TOILETS_ONLY], endpoint_count=2)
    seen = []
    step = schedule.next_step()
    while step is not None:
        seen.append((step.shape, step.attempt_index, step.endpoint_index, step.pause_sec))
        schedule.record_failure(TransportError("Overpass 504", status=504))
        step = schedule.next_step()

    pause = ATTEMPTS[1].pause_sec
    assert seen == [
        (QueryShape.FULL, 0, 0, 0.0),
        (QueryShape.FULL, 0, 1, 0.0),
        (QueryShape.FULL, 1, 0, pause),
        (QueryShape.FULL, 1, 1, 0.0),
        (QueryShape.TOILETS_ONLY, 0, 0, 0.0),
        (QueryShape.TOILETS_ONLY, 0, 1, 0.0),
        (QueryShape.TOILETS_ONLY, 1, 0, pause),
        (QueryShape.TOILETS_ONLY, 1, 1, 0.0),
    ]
    assert schedule.done and not schedule.succeeded
    assert schedule.last_reason == "Overpass 504"


def test_schedule_stops_on_results():
    schedule = SearchSchedule([QueryShape.TOILETS_ONLY], endpoint_count=3)
    schedule.next_step()
    schedule.record_results()
    assert schedule.next_step() is None
    assert schedule.succeeded


def test_schedule_requires_an_endpoint():
    with pytest.raises(ValueError):
        SearchSchedule([QueryShape.TOILETS_ONLY], endpoint_count=0)
