"""Feed scheduling service.

Decides when a feed is due, enforces the global concurrency cap and
applies the retry policy after failed runs:

    attempt k (k <= max_retries)  ->  active, next_retry = now + delay[k]
    attempt k (k >  max_retries)  ->  failed, requires reactivation

Delays are 5, 15 and 30 minutes by default, the last one repeating.
Every status change is a compare-and-swap against the repository, so two
schedulers never claim or update the same feed at once.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from feedsync.domain.entities import Feed, utcnow
from feedsync.domain.exceptions import FeedNotFoundError
from feedsync.domain.state_machines import FeedStatus
from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.config import settings as default_settings
from feedsync.infrastructure.repositories import FeedRepository
from feedsync.monitoring import metrics

logger = structlog.get_logger()

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Attempts at a compare-and-swap before giving up on a contended feed
CAS_ATTEMPTS = 3


class FeedScheduler:
    """Scheduling and retry policy over a feed repository.

    Example usage:
        scheduler = FeedScheduler(repository)
        if await scheduler.should_run_feed(feed.id) and await scheduler.can_start_new_feed():
            claimed = await scheduler.try_start_feed(feed.id)
    """

    def __init__(
        self,
        repository: FeedRepository,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize scheduler.

        Args:
            repository: Feed repository.
            settings: Application settings (cap, delays, lease threshold).
            clock: Returns the current aware UTC time.
        """
        self.repository = repository
        self.max_concurrent_feeds = settings.max_concurrent_feeds
        self.retry_delays = list(settings.retry_delays_minutes) or [5]
        self.stale_after = timedelta(minutes=settings.stale_processing_minutes)
        self.clock = clock

    async def _require_feed(self, feed_id: str) -> Feed:
        feed = await self.repository.get_feed(feed_id)
        if feed is None:
            raise FeedNotFoundError(feed_id)
        return feed

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def is_due(self, feed: Feed) -> bool:
        """Check whether a loaded feed is due for regeneration.

        A feed is due when it is active, at least one update interval has
        elapsed since its last successful sync, and any scheduled retry
        time has passed.
        """
        if not feed.status.is_schedulable():
            return False

        now = self.clock()
        interval = timedelta(hours=feed.settings.update_frequency.interval_hours)
        if now - (feed.last_sync or EPOCH) < interval:
            return False

        next_retry = feed.settings.next_retry
        if next_retry is not None and now < next_retry:
            return False

        return True

    async def should_run_feed(self, feed_id: str) -> bool:
        """Check whether a feed is due for regeneration.

        Args:
            feed_id: Feed identifier.

        Returns:
            False for unknown or non-active feeds.
        """
        feed = await self.repository.get_feed(feed_id)
        if feed is None:
            return False
        return self.is_due(feed)

    async def get_next_run_time(self, feed_id: str) -> datetime | None:
        """Earliest time the next regular run is due (diagnostics only)."""
        feed = await self.repository.get_feed(feed_id)
        if feed is None:
            return None
        interval = timedelta(hours=feed.settings.update_frequency.interval_hours)
        return (feed.last_sync or EPOCH) + interval

    # ------------------------------------------------------------------
    # Admission control
    # ------------------------------------------------------------------

    async def get_concurrent_feeds_count(self) -> int:
        """Number of feeds currently processing, across all processes."""
        return await self.repository.count_by_status(FeedStatus.PROCESSING)

    async def can_start_new_feed(self) -> bool:
        """Whether the concurrency cap leaves room for another run."""
        return await self.get_concurrent_feeds_count() < self.max_concurrent_feeds

    async def try_start_feed(self, feed_id: str) -> Feed | None:
        """Claim a feed for a run (active -> processing).

        Args:
            feed_id: Feed identifier.

        Returns:
            The claimed feed, or None if it is not active or another
            scheduler claimed it first.
        """
        feed = await self.repository.get_feed(feed_id)
        if feed is None or feed.status != FeedStatus.ACTIVE:
            return None

        claimed = feed.transition_to(FeedStatus.PROCESSING).with_changes(
            processing_started_at=self.clock()
        )
        if not await self.repository.compare_and_swap(
            claimed, FeedStatus.ACTIVE, feed.processing_started_at
        ):
            logger.info("Feed already claimed by another run", feed_id=feed_id)
            return None

        logger.info("Feed claimed for generation", feed_id=feed_id)
        return claimed

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    async def record_success(
        self,
        feed_id: str,
        live_version_id: str,
        lease: datetime | None = None,
    ) -> Feed | None:
        """Release a finished run (processing -> active).

        Sets last_sync, clears the lease and retry state and points the
        feed at the new version.

        Args:
            feed_id: Feed identifier.
            live_version_id: Version the run produced.
            lease: ``processing_started_at`` of the run's claim. When given,
                a feed that was reclaimed and claimed again is left alone.

        Returns:
            The updated feed, or None if the run lost its lease meanwhile.

        Raises:
            FeedNotFoundError: If the feed does not exist.
        """
        feed = await self._require_feed(feed_id)
        if feed.status != FeedStatus.PROCESSING or (
            lease is not None and feed.processing_started_at != lease
        ):
            logger.warning(
                "Run no longer holds the feed, success not recorded",
                feed_id=feed_id,
                status=feed.status.value,
            )
            return None

        now = self.clock()
        released = feed.with_changes(
            status=FeedStatus.ACTIVE,
            last_sync=now,
            processing_started_at=None,
            live_version_id=live_version_id,
            settings=feed.settings.cleared_retry_state(),
        )
        if not await self.repository.compare_and_swap(
            released, FeedStatus.PROCESSING, feed.processing_started_at
        ):
            logger.warning("Feed changed during run, success not recorded", feed_id=feed_id)
            return None

        logger.info("Feed generation recorded", feed_id=feed_id, version_id=live_version_id)
        return released

    async def handle_failed_feed(
        self,
        feed_id: str,
        error: BaseException | str,
        lease: datetime | None = None,
    ) -> Feed | None:
        """Apply the retry policy after a failed run.

        Args:
            feed_id: Feed identifier.
            error: Exception or message describing the failure.
            lease: ``processing_started_at`` of the failed run's claim. When
                given, the failure only applies while that claim is held.

        Returns:
            The updated feed, or None if the feed is unknown, is paused or
            failed already, or the run no longer holds its claim.
        """
        return await self._record_failure(
            feed_id, error, require_lease=lease is not None, lease=lease
        )

    async def _record_failure(
        self,
        feed_id: str,
        error: BaseException | str,
        require_lease: bool = False,
        lease: datetime | None = None,
    ) -> Feed | None:
        message = str(error) or error.__class__.__name__

        for _ in range(CAS_ATTEMPTS):
            feed = await self.repository.get_feed(feed_id)
            if feed is None:
                logger.warning("Failed feed not found", feed_id=feed_id)
                return None
            if require_lease and (
                feed.status != FeedStatus.PROCESSING
                or feed.processing_started_at != lease
            ):
                # This run no longer holds the claim
                return None
            if feed.status not in (FeedStatus.ACTIVE, FeedStatus.PROCESSING):
                logger.warning(
                    "Ignoring failure for feed that is not running",
                    feed_id=feed_id,
                    status=feed.status.value,
                )
                return None

            updated = self._apply_failure(feed, message)
            if await self.repository.compare_and_swap(
                updated, feed.status, feed.processing_started_at
            ):
                self._report_failure(updated, error)
                return updated

        logger.error("Could not record feed failure", feed_id=feed_id, error=message)
        return None

    def _apply_failure(self, feed: Feed, message: str) -> Feed:
        now = self.clock()
        retry_count = feed.settings.retry_count + 1

        if retry_count <= feed.settings.max_retries:
            delay = self.retry_delays[min(retry_count, len(self.retry_delays)) - 1]
            new_settings = feed.settings.model_copy(
                update={
                    "retry_count": retry_count,
                    "next_retry": now + timedelta(minutes=delay),
                    "last_error": message,
                }
            )
            status = FeedStatus.ACTIVE
        else:
            new_settings = feed.settings.model_copy(
                update={
                    "retry_count": retry_count,
                    "next_retry": None,
                    "last_error": message,
                    "failed_at": now,
                }
            )
            status = FeedStatus.FAILED

        if status != feed.status:
            # Validates processing -> active / active -> failed / processing -> failed
            feed = feed.transition_to(status)
        return feed.with_changes(settings=new_settings, processing_started_at=None)

    def _report_failure(self, feed: Feed, error: BaseException | str) -> None:
        exc_info = error if isinstance(error, BaseException) else None
        if feed.status == FeedStatus.FAILED:
            metrics.feed_retries_total.labels(action="failed").inc()
            logger.error(
                "Feed generation failed permanently",
                feed_id=feed.id,
                retry_count=feed.settings.retry_count,
                error=feed.settings.last_error,
                exc_info=exc_info,
            )
        else:
            metrics.feed_retries_total.labels(action="retry").inc()
            logger.warning(
                "Feed generation failed, scheduled retry",
                feed_id=feed.id,
                retry_count=feed.settings.retry_count,
                next_retry=feed.settings.next_retry.isoformat(),
                error=feed.settings.last_error,
                exc_info=exc_info,
            )

    async def reset_retry_count(self, feed_id: str) -> Feed:
        """Clear retry_count, next_retry and last_error.

        Raises:
            FeedNotFoundError: If the feed does not exist.
        """
        for _ in range(CAS_ATTEMPTS):
            feed = await self._require_feed(feed_id)
            updated = feed.with_changes(settings=feed.settings.cleared_retry_state())
            if await self.repository.compare_and_swap(
                updated, feed.status, feed.processing_started_at
            ):
                return updated
        logger.warning("Could not reset retry count", feed_id=feed_id)
        return feed

    # ------------------------------------------------------------------
    # Stale leases
    # ------------------------------------------------------------------

    async def reclaim_stale_feeds(self) -> list[Feed]:
        """Fail runs whose processing lease outlived the threshold.

        Crashed or timed-out runs leave their feed in PROCESSING; each one
        is fed into the retry policy as a failed run.

        Returns:
            Feeds that were reclaimed.
        """
        cutoff = self.clock() - self.stale_after
        reclaimed = []

        for feed in await self.repository.list_stale_processing(cutoff):
            started = feed.processing_started_at
            started_text = started.isoformat() if started else "unknown"
            logger.warning(
                "Reclaiming stale feed",
                feed_id=feed.id,
                processing_started_at=started_text,
            )
            updated = await self._record_failure(
                feed.id,
                f"Processing lease expired (started {started_text})",
                require_lease=True,
                lease=started,
            )
            if updated is not None:
                metrics.stale_feeds_reclaimed_total.inc()
                reclaimed.append(updated)

        return reclaimed
