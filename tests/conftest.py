"""
Pytest fixtures for the server tests. Each test gets its own application
root under tmp_path with an existing public/assets directory.
"""

from __future__ import annotations

import pytest

from server.core.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings()."""
    for name in ("PORT", "HOST", "MONGO_URL", "APP_ROOT", "ASSETS_DIR", "BODY_LIMIT", "CORP_POLICY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    (tmp_path / "public" / "assets").mkdir(parents=True)
    return Settings(_env_file=None, app_root=tmp_path, host="127.0.0.1")


@pytest.fixture
def make_app(settings):
    from server.main import create_app

    def _make(routers=(), **overrides):
        return create_app(settings.model_copy(update=overrides), routers=routers)

    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    """FastAPI TestClient over a fresh app."""
    from fastapi.testclient import TestClient

    return TestClient(app)
