"""
Small JSON-file store for user preferences (search radius, emergency mode).

Reads fall back to defaults on missing or corrupt files; writes report
failure with False instead of raising.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Optional

from domain.models import DEFAULT_RADIUS_M, EMERGENCY_RADIUS_M, clamp_radius
from settings import settings

logger = logging.getLogger(__name__)


@dataclass
class Preferences:
    radius_meters: float = float(DEFAULT_RADIUS_M)
    emergency: bool = False
    include_likely: bool = False


def effective_radius(radius_meters: Any, emergency: bool) -> float:
    """Emergency mode narrows the search to the closest options."""
    radius = clamp_radius(radius_meters)
    return min(radius, float(EMERGENCY_RADIUS_M)) if emergency else radius


class PreferencesStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path or settings.PREFERENCES_PATH

    def load(self) -> Preferences:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return Preferences()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable preferences at %s: %s", self.path, exc)
            return Preferences()
        if not isinstance(raw, dict):
            return Preferences()
        return Preferences(
            radius_meters=clamp_radius(raw.get("radius_meters", DEFAULT_RADIUS_M)),
            emergency=bool(raw.get("emergency", False)),
            include_likely=bool(raw.get("include_likely", False)),
        )

    def save(self, prefs: Preferences) -> bool:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = self.path + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(asdict(prefs), f)
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Could not persist preferences to %s: %s", self.path, exc)
            return False
