"""APScheduler job definitions.

The in-process trigger for scheduled feed passes. Each pass decides per
feed whether it is due, so the interval only bounds how late a due feed
can start.
"""

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from feedsync.application.feed_runner import get_feed_runner
from feedsync.infrastructure.config import settings

logger = structlog.get_logger()

JOB_ID = "update_feeds"


async def run_feed_pass() -> int:
    """Run one scheduled pass over all feeds.

    Returns:
        Number of feeds started.
    """
    runner = get_feed_runner()
    try:
        results = await runner.run_scheduled_feeds()
    finally:
        await runner.close()
    return len(results)


def setup_scheduler(interval_minutes: int | None = None) -> AsyncIOScheduler:
    """Setup and configure APScheduler.

    Args:
        interval_minutes: Minutes between passes; defaults to
            settings.scheduler_interval_minutes.

    Returns:
        Configured (not yet started) scheduler instance.
    """
    interval = max(1, interval_minutes or settings.scheduler_interval_minutes)
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_feed_pass,
        IntervalTrigger(minutes=interval),
        id=JOB_ID,
        name="Regenerate due product feeds",
        max_instances=1,  # Prevent overlapping passes
        coalesce=True,
        misfire_grace_time=300,
        replace_existing=True,
    )

    logger.info("Scheduler configured", job_id=JOB_ID, interval_minutes=interval)
    return scheduler
