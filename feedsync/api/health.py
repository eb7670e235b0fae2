"""Health check endpoints.

Provides endpoints for monitoring service health and readiness, and the
Prometheus scrape endpoint.
"""

import structlog
from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel

from feedsync.domain.state_machines import FeedStatus
from feedsync.infrastructure.config import settings
from feedsync.infrastructure.repositories import get_feed_repository

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="feedsync",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Check if service is ready to accept requests.

    Readiness requires the feed repository to answer a query.

    Returns:
        Readiness status with the number of feeds processing.
    """
    try:
        processing = await get_feed_repository().count_by_status(FeedStatus.PROCESSING)
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "error": str(e)},
        )
    return JSONResponse(content={"status": "ready", "processing_feeds": processing})


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
