"""Cron trigger endpoint.

An external scheduler calls POST /cron/update-feeds periodically; each call
runs one scheduled pass over all active feeds.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends

from feedsync.api.feeds import get_runner
from feedsync.api.schemas import CronRunResponse, ErrorResponse, FeedRunResponse
from feedsync.application.feed_runner import FeedRunner

logger = structlog.get_logger()

router = APIRouter(prefix="/cron", tags=["Cron"])


@router.post(
    "/update-feeds",
    response_model=CronRunResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Run scheduled feed pass",
    description="Regenerate every active feed that is due, within the concurrency cap.",
)
async def update_feeds(
    runner: Annotated[FeedRunner, Depends(get_runner)],
) -> CronRunResponse:
    """Run one scheduled pass.

    Args:
        runner: Feed runner.

    Returns:
        One result per feed started in this pass.
    """
    logger.info("Cron feed update triggered")
    results = await runner.run_scheduled_feeds()
    return CronRunResponse(
        results=[FeedRunResponse(**r.to_dict()) for r in results],
        started=len(results),
    )
