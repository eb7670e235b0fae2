"""Tests for API middleware."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from feedsync.api.middleware import describe_unhandled, is_public_path
from feedsync.application.feed_service import FeedService
from feedsync.infrastructure.catalog_client import CatalogClientError
from feedsync.main import app
from feedsync.rendering import RenderError


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestRequestIdMiddleware:
    """Tests for request ID correlation middleware."""

    def test_generates_request_id_if_not_provided(self, client: TestClient) -> None:
        """Should generate request ID if not in request headers."""
        response = client.get("/health")
        assert response.status_code == 200
        # UUID format
        assert len(response.headers["X-Request-ID"]) == 36

    def test_uses_provided_request_id(self, client: TestClient) -> None:
        """Should use request ID from request headers."""
        response = client.get("/health", headers={"X-Request-ID": "feed-run-42"})
        assert response.headers["X-Request-ID"] == "feed-run-42"


class TestApiKeyMiddleware:
    """Tests for API key authentication middleware."""

    def test_public_endpoints_dont_require_auth(self, client: TestClient) -> None:
        """Health, readiness and metrics are public."""
        assert client.get("/health").status_code == 200
        assert client.get("/ready").status_code == 200
        assert client.get("/metrics").status_code == 200

    def test_protected_endpoints_require_auth(self, client: TestClient) -> None:
        """Feed management requires an API key."""
        response = client.get("/feeds")
        assert response.status_code == 401
        data = response.json()
        assert data["error_code"] == "UNAUTHORIZED"
        assert data["request_id"] == response.headers["X-Request-ID"]
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_invalid_auth_format(self, client: TestClient) -> None:
        """Non-bearer schemes are rejected."""
        response = client.get("/feeds", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_invalid_api_key(self, client: TestClient) -> None:
        """Wrong keys are rejected."""
        response = client.get("/feeds", headers={"Authorization": "Bearer wrong-key"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_API_KEY"

    def test_valid_api_key(self, client: TestClient, auth_headers: dict[str, str]) -> None:
        """Valid keys pass through."""
        response = client.get("/feeds", headers=auth_headers)
        assert response.status_code == 200

    def test_feed_content_is_public(self, client: TestClient) -> None:
        """Marketplaces fetch feed documents without credentials."""
        response = client.get("/feeds/unknown/content")
        assert response.status_code == 404


class TestPublicPaths:
    """Tests for public path matching."""

    def test_public_paths(self) -> None:
        """Only listed paths and feed content are public."""
        assert is_public_path("/health")
        assert is_public_path("/docs/oauth2-redirect")
        assert is_public_path("/feeds/abc/content")
        assert not is_public_path("/feeds/abc")
        assert not is_public_path("/feeds/abc/content/extra")
        assert not is_public_path("/cron/update-feeds")


class TestErrorHandlerMiddleware:
    """Tests for errors that escape the routers."""

    def test_storage_outage(
        self, client: TestClient, auth_headers: dict[str, str], monkeypatch
    ) -> None:
        """Database failures answer 503 without leaking the driver error."""

        async def unavailable(self, shop_id=None, status=None):
            raise OperationalError("SELECT feeds", {}, ConnectionRefusedError("db down"))

        monkeypatch.setattr(FeedService, "list_feeds", unavailable)

        response = client.get("/feeds", headers={**auth_headers, "X-Request-ID": "req-7"})

        assert response.status_code == 503
        data = response.json()
        assert data["error_code"] == "REPOSITORY_UNAVAILABLE"
        assert data["request_id"] == "req-7"
        assert "db down" not in data["message"]

    def test_error_codes(self) -> None:
        """Infrastructure errors map to their own codes."""
        assert describe_unhandled(CatalogClientError("503", 503))[:2] == (
            502,
            "CATALOG_UNAVAILABLE",
        )
        assert describe_unhandled(RenderError("bad"))[1] == "RENDER_FAILED"
        assert describe_unhandled(KeyError("x"))[:2] == (500, "INTERNAL_ERROR")
