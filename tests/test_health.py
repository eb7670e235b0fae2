"""Tests for health check endpoints."""

import pytest
from fastapi.testclient import TestClient

from feedsync.api import health
from feedsync.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


def test_health_check(client: TestClient) -> None:
    """Test health endpoint returns healthy status."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "feedsync"
    assert "version" in data


def test_readiness_check(client: TestClient) -> None:
    """Test readiness endpoint returns ready status."""
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["processing_feeds"] == 0


def test_readiness_check_repository_down(client: TestClient, monkeypatch) -> None:
    """Test readiness fails when the repository cannot be queried."""

    class BrokenRepository:
        async def count_by_status(self, status):
            raise ConnectionError("database unavailable")

    monkeypatch.setattr(health, "get_feed_repository", lambda: BrokenRepository())

    response = client.get("/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"


def test_metrics_endpoint(client: TestClient) -> None:
    """Test metrics endpoint exposes Prometheus text without auth."""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "feed_runs_total" in response.text
