"""Shared fixtures for API tests."""

import pytest
from fastapi.testclient import TestClient

from feedsync.api.feeds import get_runner
from feedsync.application.feed_runner import FeedRunner
from feedsync.infrastructure.config import settings
from feedsync.infrastructure.repositories import get_feed_repository
from feedsync.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def auth_client() -> TestClient:
    """Create test client with valid API key authentication."""
    return TestClient(
        app,
        headers={"Authorization": f"Bearer {settings.feedsync_api_key}"},
    )


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {settings.feedsync_api_key}"}


@pytest.fixture
def fake_runner(catalog):
    """Route feed runs through the fake catalog."""

    async def override():
        yield FeedRunner(get_feed_repository(), catalog)

    app.dependency_overrides[get_runner] = override
    yield catalog
    app.dependency_overrides.pop(get_runner, None)
