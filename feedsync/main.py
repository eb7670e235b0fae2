"""feedsync API main application module.

This module initializes the FastAPI application and configures
core middleware, routers, and startup/shutdown events.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feedsync.api.cron import router as cron_router
from feedsync.api.feeds import router as feeds_router
from feedsync.api.health import router as health_router
from feedsync.api.middleware import describe_unhandled, error_response, setup_middleware
from feedsync.domain.exceptions import (
    DomainError,
    FeedNotFoundError,
    FeedVersionNotFoundError,
    InvalidFeedSettingsError,
    InvalidStateTransitionError,
    TierLimitExceededError,
    VersionConflictError,
)
from feedsync.infrastructure.config import settings
from feedsync.infrastructure.logging_setup import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    # Startup
    configure_logging()
    logger.info(
        "Starting feedsync API",
        version=settings.api_version,
        debug=settings.debug,
        repository_backend=settings.repository_backend,
    )

    scheduler = None
    if settings.scheduler_enabled:
        from feedsync.worker.scheduler import setup_scheduler

        scheduler = setup_scheduler()
        scheduler.start()
        logger.info("Feed scheduler started")

    yield

    # Shutdown
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("Shutting down feedsync API")


app = FastAPI(
    title="feedsync API",
    description="Scheduled product feed generation with validation and version history",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, API key auth, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(feeds_router)
app.include_router(cron_router)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


# Most specific first; the first isinstance match wins
DOMAIN_ERROR_STATUS: list[tuple[type[DomainError], int, str]] = [
    (FeedNotFoundError, status.HTTP_404_NOT_FOUND, "FEED_NOT_FOUND"),
    (FeedVersionNotFoundError, status.HTTP_404_NOT_FOUND, "VERSION_NOT_FOUND"),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT, "INVALID_STATE_TRANSITION"),
    (VersionConflictError, status.HTTP_409_CONFLICT, "VERSION_CONFLICT"),
    (TierLimitExceededError, status.HTTP_403_FORBIDDEN, "TIER_LIMIT_EXCEEDED"),
    (InvalidFeedSettingsError, 422, "INVALID_FEED_SETTINGS"),
]


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map domain errors to HTTP responses with consistent format."""
    status_code, error_code = status.HTTP_400_BAD_REQUEST, "DOMAIN_ERROR"
    for error_type, mapped_status, mapped_code in DOMAIN_ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code, error_code = mapped_status, mapped_code
            break

    logger.info(
        "Domain error",
        path=request.url.path,
        error_code=error_code,
        error=exc.message,
    )

    details = [
        {"field": key, "message": str(value)}
        for key, value in exc.details.items()
        if value is not None
    ]
    return error_response(request, status_code, error_code, exc.message, details)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        error_code = "ERROR"
        message = str(detail)
        details = []

    return error_response(request, exc.status_code, error_code, message, details)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions with consistent format."""
    status_code, error_code, message = describe_unhandled(exc)
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error_code=error_code,
        error=str(exc),
    )
    return error_response(request, status_code, error_code, message)
