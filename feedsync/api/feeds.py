"""Feed API endpoints.

Provides endpoints for feed management and serving:
- POST /feeds - create a feed within plan limits
- GET /feeds - list feeds
- GET /feeds/{id} - feed details
- POST /feeds/{id}/pause | resume | reactivate - operator status changes
- POST /feeds/{id}/run - generate a feed now
- GET /feeds/{id}/content - live feed document (public)
- GET /feeds/{id}/versions - version history
- GET /feeds/{id}/versions/compare - compare two versions
- POST /feeds/{id}/rollback - restore an earlier version
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from feedsync.api.schemas import (
    DiffSchema,
    ErrorResponse,
    FeedCreateRequest,
    FeedListResponse,
    FeedResponse,
    FeedRunResponse,
    RollbackRequest,
    VersionComparisonResponse,
    VersionListResponse,
    VersionSchema,
)
from feedsync.application.feed_runner import FeedRunner, get_feed_runner
from feedsync.application.feed_service import FeedService, get_feed_service
from feedsync.application.scheduler import FeedScheduler
from feedsync.application.version_manager import FeedVersionManager
from feedsync.domain.entities import Feed, FeedVersion
from feedsync.domain.exceptions import FeedVersionNotFoundError
from feedsync.domain.state_machines import FeedStatus
from feedsync.infrastructure.repositories import get_feed_repository
from feedsync.rendering import CONTENT_TYPES

router = APIRouter(prefix="/feeds", tags=["Feeds"])

ERROR_RESPONSES = {
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> FeedService:
    """Get feed service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_feed_service(request_id=request_id)


def get_version_manager() -> FeedVersionManager:
    """Get version manager over the shared repository."""
    return FeedVersionManager(get_feed_repository())


def get_scheduler() -> FeedScheduler:
    """Get scheduler over the shared repository."""
    return FeedScheduler(get_feed_repository())


async def get_runner() -> AsyncGenerator[FeedRunner, None]:
    """Get a feed runner, closing its catalog client afterwards."""
    runner = get_feed_runner()
    try:
        yield runner
    finally:
        await runner.close()


# ============================================================================
# Converters
# ============================================================================


def feed_to_response(feed: Feed, request: Request, next_run_at=None) -> FeedResponse:
    """Convert Feed to FeedResponse."""
    return FeedResponse(
        id=feed.id,
        shop_id=feed.shop_id,
        name=feed.name,
        status=feed.status,
        plan_tier=feed.plan_tier,
        settings=feed.settings.to_storage(),
        last_sync=feed.last_sync,
        next_run_at=next_run_at,
        live_version_id=feed.live_version_id,
        content_url=str(request.url_for("get_feed_content", feed_id=feed.id)),
        created_at=feed.created_at,
        updated_at=feed.updated_at,
    )


def version_to_schema(version: FeedVersion, live_version_id: str | None = None) -> VersionSchema:
    """Convert FeedVersion to VersionSchema."""
    return VersionSchema(
        id=version.id,
        feed_id=version.feed_id,
        version=version.version,
        format=version.format,
        status=version.status,
        stats=version.stats.to_dict(),
        rollback_from=version.rollback_from,
        note=version.note,
        created_by=version.created_by,
        created_at=version.created_at,
        is_live=version.id == live_version_id,
    )


# ============================================================================
# Feed Endpoints
# ============================================================================


@router.post(
    "",
    response_model=FeedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
    summary="Create feed",
    description="Create a feed. Refused when the shop's plan limits are reached.",
)
async def create_feed(
    body: FeedCreateRequest,
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
) -> FeedResponse:
    """Create a feed.

    Args:
        body: Feed creation request.
        request: Incoming request.
        service: Feed service.

    Returns:
        The created feed.
    """
    feed = await service.create_feed(
        shop_id=body.shop_id,
        name=body.name,
        settings=body.settings,
        plan_tier=body.plan_tier,
    )
    return feed_to_response(feed, request)


@router.get(
    "",
    response_model=FeedListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List feeds",
)
async def list_feeds(
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
    shop_id: str | None = Query(default=None, description="Filter by shop"),
    status: FeedStatus | None = Query(default=None, description="Filter by status"),
) -> FeedListResponse:
    """List feeds with optional filters."""
    feeds = await service.list_feeds(shop_id=shop_id, status=status)
    return FeedListResponse(
        items=[feed_to_response(f, request) for f in feeds],
        total=len(feeds),
    )


@router.get(
    "/{feed_id}",
    response_model=FeedResponse,
    responses=ERROR_RESPONSES,
    summary="Get feed details",
)
async def get_feed(
    feed_id: str,
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
    scheduler: Annotated[FeedScheduler, Depends(get_scheduler)],
) -> FeedResponse:
    """Get a feed with its next scheduled run time."""
    feed = await service.get_feed(feed_id)
    next_run_at = await scheduler.get_next_run_time(feed_id)
    return feed_to_response(feed, request, next_run_at=next_run_at)


@router.post(
    "/{feed_id}/pause",
    response_model=FeedResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    summary="Pause feed",
)
async def pause_feed(
    feed_id: str,
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
) -> FeedResponse:
    """Stop scheduling an active feed."""
    return feed_to_response(await service.pause_feed(feed_id), request)


@router.post(
    "/{feed_id}/resume",
    response_model=FeedResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    summary="Resume feed",
)
async def resume_feed(
    feed_id: str,
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
) -> FeedResponse:
    """Resume a paused feed."""
    return feed_to_response(await service.resume_feed(feed_id), request)


@router.post(
    "/{feed_id}/reactivate",
    response_model=FeedResponse,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse}},
    summary="Reactivate failed feed",
    description="Return a feed that exhausted its retries to scheduling.",
)
async def reactivate_feed(
    feed_id: str,
    request: Request,
    service: Annotated[FeedService, Depends(get_service)],
) -> FeedResponse:
    """Reactivate a failed feed with a clean retry state."""
    return feed_to_response(await service.reactivate_feed(feed_id), request)


@router.post(
    "/{feed_id}/run",
    response_model=FeedRunResponse,
    responses=ERROR_RESPONSES,
    summary="Generate feed now",
    description="Run generation immediately, ignoring the update frequency.",
)
async def run_feed(
    feed_id: str,
    service: Annotated[FeedService, Depends(get_service)],
    runner: Annotated[FeedRunner, Depends(get_runner)],
) -> FeedRunResponse:
    """Generate a feed now.

    The run still has to claim the feed, so paused, failed or already
    processing feeds come back as "skipped".
    """
    await service.get_feed(feed_id)
    result = await runner.run_feed(feed_id)
    return FeedRunResponse(**result.to_dict())


@router.get(
    "/{feed_id}/content",
    responses={404: {"model": ErrorResponse}},
    summary="Get live feed document",
    description="Serve the live version verbatim with the content type of its format.",
)
async def get_feed_content(
    feed_id: str,
    service: Annotated[FeedService, Depends(get_service)],
) -> Response:
    """Serve the live version of a feed."""
    version = await service.get_live_version(feed_id)
    return Response(
        content=version.content,
        media_type=CONTENT_TYPES[version.format],
        headers={
            "X-Feed-Version": str(version.version),
            "Cache-Control": "public, max-age=300",
        },
    )


# ============================================================================
# Version Endpoints
# ============================================================================


@router.get(
    "/{feed_id}/versions",
    response_model=VersionListResponse,
    responses=ERROR_RESPONSES,
    summary="List feed versions",
)
async def list_versions(
    feed_id: str,
    service: Annotated[FeedService, Depends(get_service)],
    manager: Annotated[FeedVersionManager, Depends(get_version_manager)],
    include_archived: bool = Query(default=False, description="Include archived versions"),
) -> VersionListResponse:
    """List versions of a feed, newest first."""
    feed = await service.get_feed(feed_id)
    versions = await manager.get_version_history(feed_id, include_archived=include_archived)
    return VersionListResponse(
        items=[version_to_schema(v, feed.live_version_id) for v in versions],
        total=len(versions),
    )


@router.get(
    "/{feed_id}/versions/compare",
    response_model=VersionComparisonResponse,
    responses=ERROR_RESPONSES,
    summary="Compare two versions",
)
async def compare_versions(
    feed_id: str,
    manager: Annotated[FeedVersionManager, Depends(get_version_manager)],
    a: str = Query(..., description="Baseline version ID"),
    b: str = Query(..., description="Compared version ID"),
) -> VersionComparisonResponse:
    """Compare version ``b`` against baseline ``a``."""
    for version_id in (a, b):
        version = await manager.get_version(version_id)
        if version.feed_id != feed_id:
            raise FeedVersionNotFoundError(version_id, feed_id=feed_id)

    comparison = await manager.compare_versions(a, b)
    return VersionComparisonResponse(
        version_a=comparison.version_a,
        version_b=comparison.version_b,
        product_diff=comparison.product_diff,
        error_diff=DiffSchema(added=comparison.errors_added, removed=comparison.errors_removed),
        warning_diff=DiffSchema(
            added=comparison.warnings_added, removed=comparison.warnings_removed
        ),
        time_gap_seconds=comparison.time_gap.total_seconds(),
    )


@router.post(
    "/{feed_id}/rollback",
    response_model=VersionSchema,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
    summary="Roll back feed",
    description="Create a new live version from an earlier one.",
)
async def rollback_feed(
    feed_id: str,
    body: RollbackRequest,
    manager: Annotated[FeedVersionManager, Depends(get_version_manager)],
) -> VersionSchema:
    """Restore an earlier version as the live one."""
    restored = await manager.rollback(feed_id, body.version_id)
    return version_to_schema(restored, live_version_id=restored.id)
