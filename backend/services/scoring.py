"""
Utility score for a place, used as the tie-break after distance.

The score reflects how practical a place is to actually use (public access,
free of charge, known opening hours, accessibility). It never overrides
distance ordering.
"""
from __future__ import annotations

import math

from domain.models import Place

MIN_SCORE = 0.0
MAX_SCORE = 6.0

GENERIC_NAMES = {
    "public toilet",
    "public toilets",
    "toilet",
    "toilets",
    "wc",
    "wc / toilet",
    "user-added place",
}

_YES = {"yes", "true", "1"}
_NO = {"no", "false", "0"}


def _norm(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _has_text(value) -> bool:
    return isinstance(value, str) and bool(value.strip())


def utility_score(place: Place) -> float:
    """Additive heuristic over the place attributes, clamped to [0, 6]."""
    attrs = place.attributes
    score = 0.0

    if place.is_confirmed:
        score += 3.0

    access = _norm(attrs.access)
    if access in ("public", "yes"):
        score += 1.2
    elif access == "customers":
        # kept positive even though a purchase may be required
        score += 0.3
    elif access in ("private", "no"):
        score -= 0.8

    fee = _norm(attrs.fee)
    if fee in _NO:
        score += 1.0
    elif fee in _YES:
        score -= 0.4

    if _has_text(attrs.opening_hours):
        score += 0.5

    wheelchair = _norm(attrs.wheelchair)
    if wheelchair == "yes":
        score += 0.6
    elif wheelchair == "no":
        score -= 0.2

    if _norm(attrs.changing_table) in _YES:
        score += 0.25
    if _norm(attrs.unisex) in _YES:
        score += 0.15

    if _has_text(attrs.address):
        score += 0.25

    name = _norm(place.name)
    if not name or name in GENERIC_NAMES:
        score -= 0.1

    if not math.isfinite(score):
        score = 0.0
    return max(MIN_SCORE, min(MAX_SCORE, score))
