import os
from pathlib import Path

# Basic settings helper to read environment configuration.

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_OVERPASS_ENDPOINTS = (
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.nchc.org.tw/api/interpreter",
)


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_list(val: str | None, default: tuple[str, ...]) -> list[str]:
    if not val:
        return list(default)
    items = [v.strip() for v in val.split(",") if v.strip()]
    return items or list(default)


def _as_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.OVERPASS_ENDPOINTS: list[str] = _as_list(
            os.getenv("OVERPASS_ENDPOINTS"), DEFAULT_OVERPASS_ENDPOINTS
        )
        self.OVERPASS_HARD_TIMEOUT_SEC: float = _as_float(os.getenv("OVERPASS_HARD_TIMEOUT_SEC"), 55.0)
        self.OVERPASS_MAX_RESULTS: int = int(_as_float(os.getenv("OVERPASS_MAX_RESULTS"), 300))
        self.OVERPASS_USER_AGENT: str = os.getenv(
            "OVERPASS_USER_AGENT", "toilet-finder/0.1 (contact: example@example.com)"
        )
        self.DB_PATH: str = os.getenv("TOILET_FINDER_DB_PATH", str(BASE_DIR / "data" / "app.db"))
        self.OFFLINE_CACHE_ENABLED: bool = _as_bool(os.getenv("OFFLINE_CACHE_ENABLED"), True)
        self.OFFLINE_CACHE_PATH: str = os.getenv(
            "OFFLINE_CACHE_PATH", str(BASE_DIR / "data" / "offline_cache.sqlite")
        )
        self.OFFLINE_CACHE_VERSION: str = os.getenv("OFFLINE_CACHE_VERSION", "toilet-finder-v4")
        self.APP_ORIGIN: str = os.getenv("APP_ORIGIN", "http://localhost:8000")
        self.PREFERENCES_PATH: str = os.getenv(
            "PREFERENCES_PATH", str(BASE_DIR / "data" / "preferences.json")
        )


settings = Settings()
