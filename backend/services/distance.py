"""Great-circle distance helpers."""
from __future__ import annotations

import math
from typing import Optional

from domain.models import Coordinate

EARTH_RADIUS_M = 6_371_000.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters. Non-finite inputs yield NaN."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    if math.isnan(h):
        return math.nan
    # guard against rounding pushing h slightly outside [0, 1]
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_meters(a: Optional[Coordinate], b: Optional[Coordinate]) -> float:
    """Distance between two coordinates; NaN when either side is missing."""
    if a is None or b is None:
        return math.nan
    return haversine_meters(a.lat, a.lon, b.lat, b.lon)


def format_distance(meters: float) -> str:
    if meters is None or not math.isfinite(meters):
        return "—"
    if meters < 1000:
        return f"{round(meters)} m"
    km = meters / 1000
    return f"{km:.1f} km" if km < 10 else f"{km:.0f} km"
