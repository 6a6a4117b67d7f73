import pytest

from domain.errors import InsecureContext, PermissionDenied, PositionTimeout, PositionUnavailable
from domain.models import Coordinate
from services.geolocation import FixedPositionProvider, is_secure_context, locate, user_guidance


class CountingProvider(FixedPositionProvider):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = []

    def get_current_position(self, timeout_ms=12000, high_accuracy=True):
        self.calls.append((timeout_ms, high_accuracy))
        return super().get_current_position(timeout_ms, high_accuracy)


@pytest.mark.parametrize(
    "origin,expected",
    [
        ("https://toilets.example", True),
        ("http://localhost:5173", True),
        ("http://127.0.0.1:8000", True),
        ("http://toilets.example", False),
        ("file:///index.html", False),
    ],
)
def test_secure_context(origin, expected):
    assert is_secure_context(origin) is expected


def test_insecure_origin_is_rejected_before_asking_provider():
    provider = CountingProvider(Coordinate(45.0, 9.0))
    with pytest.raises(InsecureContext):
        locate(provider, "http://toilets.example")
    assert provider.calls == []


def test_locate_passes_options_and_returns_coordinate():
    provider = CountingProvider(Coordinate(45.0, 9.0))
    assert locate(provider, "https://toilets.example", timeout_ms=5000, high_accuracy=False) == Coordinate(45.0, 9.0)
    assert provider.calls == [(5000, False)]


def test_invalid_provider_coordinates_become_unavailable():
    provider = FixedPositionProvider(Coordinate(float("nan"), 9.0))
    with pytest.raises(PositionUnavailable):
        locate(provider, "https://toilets.example")


def test_provider_errors_propagate():
    provider = FixedPositionProvider(error=PositionTimeout("slow fix"))
    with pytest.raises(PositionTimeout):
        locate(provider, "https://toilets.example")


def test_guidance_differs_per_kind():
    messages = {
        user_guidance(PermissionDenied()),
        user_guidance(InsecureContext()),
        user_guidance(PositionTimeout()),
        user_guidance(PositionUnavailable()),
        user_guidance(RuntimeError()),
    }
    assert len(messages) == 5
    assert "HTTPS" in user_guidance(InsecureContext())
