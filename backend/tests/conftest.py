import os
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure the backend package root is on sys.path for direct pytest runs
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Keep test runs from touching backend/data
_TMP_DATA = tempfile.mkdtemp(prefix="toilet-finder-tests-")
os.environ.setdefault("TOILET_FINDER_DB_PATH", os.path.join(_TMP_DATA, "app.db"))
os.environ.setdefault("OFFLINE_CACHE_PATH", os.path.join(_TMP_DATA, "offline_cache.sqlite"))
os.environ.setdefault("PREFERENCES_PATH", os.path.join(_TMP_DATA, "preferences.json"))


@pytest.fixture
def session_factory(tmp_path):
    """A sessionmaker bound to a fresh SQLite file with all tables created."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from db import Base
    from repositories import models  # noqa: F401  Ensures models are registered

    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    engine.dispose()
