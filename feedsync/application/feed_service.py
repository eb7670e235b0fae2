"""Feed application service.

Operator-facing feed operations:
- Creating feeds within plan tier limits
- Pausing, resuming and reactivating feeds
- Resolving the live version served to marketplaces
"""

from typing import Any

import structlog

from feedsync.application.tier_limits import check_tier_limits
from feedsync.domain.entities import Feed, FeedVersion, PlanTier
from feedsync.domain.exceptions import (
    FeedNotFoundError,
    FeedVersionNotFoundError,
    InvalidStateTransitionError,
    TierLimitExceededError,
)
from feedsync.domain.state_machines import FeedStatus, validate_feed_transition
from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.config import settings as default_settings
from feedsync.infrastructure.repositories import FeedRepository, get_feed_repository

logger = structlog.get_logger()


class FeedService:
    """Application service for managing feeds."""

    def __init__(
        self,
        repository: FeedRepository | None = None,
        settings: Settings = default_settings,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            repository: Feed repository.
            settings: Application settings.
            request_id: Request ID for correlation.
        """
        self.repository = repository or get_feed_repository()
        self.settings = settings
        self.request_id = request_id

    async def create_feed(
        self,
        shop_id: str,
        name: str,
        settings: dict[str, Any] | None = None,
        plan_tier: PlanTier = PlanTier.BASIC,
    ) -> Feed:
        """Create a feed for a shop.

        Args:
            shop_id: Owning shop.
            name: Feed name.
            settings: Raw feed settings.
            plan_tier: Plan tier of the shop.

        Returns:
            The created feed, active and never synced.

        Raises:
            InvalidFeedSettingsError: If the settings are malformed.
            TierLimitExceededError: If the plan does not allow another feed
                or that many products.
        """
        raw = dict(settings or {})
        raw.setdefault("max_retries", self.settings.default_max_retries)
        parsed = Feed.parse_settings(raw)

        existing = [f for f in await self.repository.list_feeds() if f.shop_id == shop_id]
        check = check_tier_limits(
            plan_tier,
            existing,
            product_count=len(parsed.product_ids),
            new_feed=True,
        )
        if not check.allowed:
            logger.info(
                "Feed creation refused by plan limits",
                shop_id=shop_id,
                tier=plan_tier.value,
                reason=check.reason,
                request_id=self.request_id,
            )
            raise TierLimitExceededError(check.reason or "Plan limit reached", plan_tier.value)

        feed = Feed(shop_id=shop_id, name=name, settings=parsed, plan_tier=plan_tier)
        await self.repository.add_feed(feed)

        logger.info(
            "Feed created",
            feed_id=feed.id,
            shop_id=shop_id,
            format=parsed.format.value,
            update_frequency=parsed.update_frequency.value,
            request_id=self.request_id,
        )
        return feed

    async def get_feed(self, feed_id: str) -> Feed:
        """Get a feed by ID.

        Raises:
            FeedNotFoundError: If the feed does not exist.
        """
        feed = await self.repository.get_feed(feed_id)
        if feed is None:
            raise FeedNotFoundError(feed_id)
        return feed

    async def list_feeds(
        self, shop_id: str | None = None, status: FeedStatus | None = None
    ) -> list[Feed]:
        """List feeds, optionally for one shop and/or status."""
        feeds = await self.repository.list_feeds(status=status)
        if shop_id is not None:
            feeds = [f for f in feeds if f.shop_id == shop_id]
        return feeds

    async def pause_feed(self, feed_id: str) -> Feed:
        """Stop scheduling an active feed."""
        return await self._transition(feed_id, FeedStatus.PAUSED)

    async def resume_feed(self, feed_id: str) -> Feed:
        """Resume scheduling a paused feed."""
        return await self._transition(feed_id, FeedStatus.ACTIVE, expected=FeedStatus.PAUSED)

    async def reactivate_feed(self, feed_id: str) -> Feed:
        """Return a failed feed to scheduling with a clean retry state."""
        return await self._transition(feed_id, FeedStatus.ACTIVE, expected=FeedStatus.FAILED)

    async def _transition(
        self,
        feed_id: str,
        target: FeedStatus,
        expected: FeedStatus | None = None,
    ) -> Feed:
        """Move a feed to ``target`` with a compare-and-swap.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            InvalidStateTransitionError: If the feed is not in ``expected``,
                the move is not allowed, or the feed changed concurrently.
        """
        feed = await self.get_feed(feed_id)
        current = feed.status
        if expected is not None and current != expected:
            raise InvalidStateTransitionError(
                entity_type="Feed",
                entity_id=feed_id,
                current_state=current.value,
                target_state=target.value,
                allowed_transitions=[s.value for s in current.allowed_transitions()],
            )
        validate_feed_transition(feed_id, current, target)

        changes: dict[str, Any] = {"status": target}
        if current == FeedStatus.FAILED:
            changes["settings"] = feed.settings.cleared_retry_state().model_copy(
                update={"failed_at": None}
            )
        updated = feed.with_changes(**changes)

        if not await self.repository.compare_and_swap(
            updated, current, feed.processing_started_at
        ):
            latest = await self.get_feed(feed_id)
            raise InvalidStateTransitionError(
                entity_type="Feed",
                entity_id=feed_id,
                current_state=latest.status.value,
                target_state=target.value,
                allowed_transitions=[s.value for s in latest.status.allowed_transitions()],
            )

        logger.info(
            "Feed status changed",
            feed_id=feed_id,
            from_status=current.value,
            to_status=target.value,
            request_id=self.request_id,
        )
        return updated

    async def get_live_version(self, feed_id: str) -> FeedVersion:
        """Version currently served for a feed.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            FeedVersionNotFoundError: If the feed has never been generated.
        """
        feed = await self.get_feed(feed_id)
        if feed.live_version_id is None:
            raise FeedVersionNotFoundError("live", feed_id=feed_id)

        version = await self.repository.get_version(feed.live_version_id)
        if version is None:
            raise FeedVersionNotFoundError(feed.live_version_id, feed_id=feed_id)
        return version


def get_feed_service(request_id: str | None = None) -> FeedService:
    """Get a feed service over the shared repository."""
    return FeedService(request_id=request_id)
