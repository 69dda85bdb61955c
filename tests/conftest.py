"""
Shared fixtures: sample images, sheet settings and an API client backed by
a throwaway SQLite file.
"""

import pytest
from fastapi.testclient import TestClient

from app.models.schemas import SheetSettings
from tests.helpers import make_png


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def settings():
    """US Letter, half-inch margins, quarter-inch grid."""
    return SheetSettings()


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("PRINTSTUDIO_DB_PATH", str(tmp_path / "studio.db"))
    from app.main import app

    with TestClient(app) as c:
        yield c
