"""API middleware for feedsync.

Provides:
- API key authentication
- Request ID correlation
- Error handling
"""

import re
import time
from typing import Any, Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from feedsync.infrastructure.catalog_client import CatalogClientError
from feedsync.infrastructure.config import settings
from feedsync.rendering import RenderError

logger = structlog.get_logger()


def error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the feedsync error envelope for a request."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details or [],
            "request_id": getattr(request.state, "request_id", None),
        },
        headers=headers,
    )


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlates log lines and error envelopes with one request ID.

    Reuses the caller's X-Request-ID when present, so a cron caller can
    trace a whole feed pass.
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start_time = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round(duration_ms, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.HEADER_NAME] = request_id
        return response


# ============================================================================
# API Key Authentication Middleware
# ============================================================================


# Paths that don't require authentication
PUBLIC_PATHS = {
    "/health",
    "/ready",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
}

# Marketplaces fetch feed documents without credentials
PUBLIC_PATTERNS = (re.compile(r"^/feeds/[^/]+/content$"),)


def is_public_path(path: str) -> bool:
    """Check whether a path is served without an API key."""
    if path in PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc"):
        return True
    return any(pattern.match(path) for pattern in PUBLIC_PATTERNS)


def _unauthorized(request: Request, error_code: str, message: str) -> JSONResponse:
    return error_response(
        request,
        status.HTTP_401_UNAUTHORIZED,
        error_code,
        message,
        headers={"WWW-Authenticate": "Bearer"},
    )


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Middleware for API key authentication.

    Validates the Authorization header contains a valid API key.
    Supports Bearer token format: "Authorization: Bearer <api_key>"
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Validate API key for protected endpoints.

        Args:
            request: Incoming request.
            call_next: Next middleware/handler.

        Returns:
            Response or 401 error.
        """
        path = request.url.path.rstrip("/")
        if is_public_path(path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _unauthorized(request, "UNAUTHORIZED", "Missing Authorization header")

        parts = auth_header.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _unauthorized(
                request,
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
            )

        if parts[1] != settings.feedsync_api_key:
            logger.warning("Invalid API key", path=path, method=request.method)
            return _unauthorized(request, "INVALID_API_KEY", "Invalid API key")

        request.state.authenticated = True
        return await call_next(request)


# ============================================================================
# Error Handling Middleware
# ============================================================================


# Infrastructure failures that escape a handler, most specific first
UNHANDLED_ERRORS: list[tuple[type[Exception], int, str, str]] = [
    (
        SQLAlchemyError,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "REPOSITORY_UNAVAILABLE",
        "Feed storage is unavailable",
    ),
    (
        CatalogClientError,
        status.HTTP_502_BAD_GATEWAY,
        "CATALOG_UNAVAILABLE",
        "Product catalog request failed",
    ),
    (
        RenderError,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "RENDER_FAILED",
        "Feed document could not be rendered",
    ),
]


def describe_unhandled(exc: Exception) -> tuple[int, str, str]:
    """Status code, error code and public message for an unhandled error."""
    for error_type, status_code, error_code, message in UNHANDLED_ERRORS:
        if isinstance(exc, error_type):
            return status_code, error_code, message
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "An internal error occurred"


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns exceptions that escape the routers into error envelopes.

    Storage outages answer 503 and catalog failures 502. Anything else is
    a 500 with no internal detail.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            status_code, error_code, message = describe_unhandled(e)
            logger.exception(
                "Request failed",
                path=request.url.path,
                method=request.method,
                error_code=error_code,
                error=str(e),
            )
            return error_response(request, status_code, error_code, message)


# ============================================================================
# Middleware Setup
# ============================================================================


def setup_middleware(app: FastAPI) -> None:
    """Install error handling, API key checks and request IDs.

    The last middleware added runs first. Request IDs are bound before the
    API key check, and the error handler sits closest to the routers.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(ApiKeyMiddleware)
    app.add_middleware(RequestIdMiddleware)
