"""Feed generation orchestration.

One run of a feed:

    claim (active -> processing)
      -> fetch products (bounded by plan tier)
      -> validate, reporting progress and per-product outcomes
      -> render the valid subset
      -> store a new version
      -> release (processing -> active, live version updated)

Any exception after the claim is treated as a transient failure and handed
to the scheduler's retry policy. Invalid products never fail a run.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from feedsync.application.scheduler import FeedScheduler
from feedsync.application.tier_limits import limits_for
from feedsync.application.version_manager import FeedVersionManager
from feedsync.domain.entities import Feed, VersionStats
from feedsync.domain.state_machines import FeedStatus
from feedsync.infrastructure.catalog_client import CatalogSource, ShopifyCatalogClient
from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.config import settings as default_settings
from feedsync.infrastructure.repositories import FeedRepository, get_feed_repository
from feedsync.monitoring import metrics
from feedsync.monitoring.monitor import FeedMonitor
from feedsync.rendering import render_feed
from feedsync.validation import validate_feed

logger = structlog.get_logger()

# Run outcomes
RUN_SUCCESS = "success"
RUN_PARTIAL = "partial"
RUN_DEGRADED = "degraded"
RUN_ERROR = "error"
RUN_SKIPPED = "skipped"


@dataclass
class FeedRunResult:
    """Outcome of one feed run."""

    feed_id: str
    status: str
    version_id: str | None = None
    version: int | None = None
    total_products: int = 0
    valid_products: int = 0
    invalid_products: int = 0
    health: str | None = None
    duration_seconds: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "feed_id": self.feed_id,
            "status": self.status,
            "version_id": self.version_id,
            "version": self.version,
            "total_products": self.total_products,
            "valid_products": self.valid_products,
            "invalid_products": self.invalid_products,
            "health": self.health,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


class FeedRunner:
    """Runs feed generation for due feeds.

    Example usage:
        runner = FeedRunner(repository, ShopifyCatalogClient())
        results = await runner.run_scheduled_feeds()
        await runner.close()
    """

    def __init__(
        self,
        repository: FeedRepository,
        catalog: CatalogSource,
        scheduler: FeedScheduler | None = None,
        version_manager: FeedVersionManager | None = None,
        settings: Settings = default_settings,
    ) -> None:
        """Initialize runner.

        Args:
            repository: Feed repository.
            catalog: Source of product records.
            scheduler: Scheduler; built over the repository if omitted.
            version_manager: Version manager; built over the repository if omitted.
            settings: Application settings.
        """
        self.repository = repository
        self.catalog = catalog
        self.scheduler = scheduler or FeedScheduler(repository, settings)
        self.version_manager = version_manager or FeedVersionManager(repository, settings)
        self.settings = settings

    async def close(self) -> None:
        """Release the catalog client, if it holds connections."""
        close = getattr(self.catalog, "close", None)
        if close is not None:
            await close()

    async def run_scheduled_feeds(self) -> list[FeedRunResult]:
        """Run every active feed that is due, within the concurrency cap.

        Stale processing leases are reclaimed first. Feeds are evaluated
        one at a time; a feed that finds the cap full is left for the next
        pass.

        Returns:
            One result per feed that was started.
        """
        await self.scheduler.reclaim_stale_feeds()

        results: list[FeedRunResult] = []
        deferred = 0

        for feed in await self.repository.list_feeds(status=FeedStatus.ACTIVE):
            if not await self.scheduler.should_run_feed(feed.id):
                continue
            if not await self.scheduler.can_start_new_feed():
                deferred += 1
                logger.info("Concurrency limit reached, deferring feed", feed_id=feed.id)
                continue
            results.append(await self.run_feed(feed.id))

        logger.info(
            "Scheduled feed pass completed",
            started=len(results),
            deferred=deferred,
            failed=sum(1 for r in results if r.status == RUN_ERROR),
        )
        return results

    async def run_feed(self, feed_id: str) -> FeedRunResult:
        """Generate one feed now.

        The concurrency cap applies to manual runs as well as scheduled
        passes.

        Args:
            feed_id: Feed identifier.

        Returns:
            FeedRunResult; ``status`` is "skipped" when the cap is full or
            the feed could not be claimed, and "error" when the run failed.
        """
        if not await self.scheduler.can_start_new_feed():
            logger.info("Concurrency limit reached, feed not started", feed_id=feed_id)
            return FeedRunResult(
                feed_id=feed_id,
                status=RUN_SKIPPED,
                error="Concurrency limit reached, try again later",
            )

        feed = await self.scheduler.try_start_feed(feed_id)
        if feed is None:
            return FeedRunResult(
                feed_id=feed_id,
                status=RUN_SKIPPED,
                error="Feed is not active or is already processing",
            )

        try:
            return await self._generate(feed)
        except Exception as e:
            metrics.feed_runs_total.labels(
                format=feed.settings.format.value, outcome=RUN_ERROR
            ).inc()
            await self.scheduler.handle_failed_feed(
                feed.id, e, lease=feed.processing_started_at
            )
            return FeedRunResult(feed_id=feed.id, status=RUN_ERROR, error=str(e))

    async def _generate(self, feed: Feed) -> FeedRunResult:
        format = feed.settings.format
        monitor = FeedMonitor(
            feed.id,
            feed.shop_id,
            total_products=0,
            format=format.value,
            batch_size=self.settings.monitor_batch_size,
            degraded_threshold=self.settings.health_degraded_threshold,
        )

        limit = limits_for(feed.plan_tier).products_per_feed_limit
        products = await self.catalog.fetch_products(feed.settings, limit)
        monitor.update_total_products(len(products))

        last_reported = -1

        def on_progress(percent: float) -> None:
            nonlocal last_reported
            # Only whole-percent steps reach the log
            if int(percent) != last_reported:
                last_reported = int(percent)
                monitor.update_progress(percent)

        validation = validate_feed(products, on_progress, currency=feed.settings.currency)

        invalid = {id(p) for p in validation.invalid_products}
        first_error = {}
        for issue in validation.errors:
            first_error.setdefault(issue.product_id, issue.message)
        for product in products:
            failed = id(product) in invalid
            monitor.product_processed(
                not failed,
                product.id,
                error=first_error.get(product.id) if failed else None,
            )

        content = render_feed(
            validation.valid_products,
            feed.settings,
            title=feed.name,
            link=f"https://{self.settings.shopify_shop_domain}",
        )
        stats = VersionStats(
            total_products=validation.total_products,
            valid_products=len(validation.valid_products),
            invalid_products=len(validation.invalid_products),
            errors=tuple(validation.errors),
            warnings=tuple(validation.warnings),
        )
        version = await self.version_manager.create_version(feed.id, content, format, stats)

        summary = monitor.complete()
        released = await self.scheduler.record_success(
            feed.id, version.id, lease=feed.processing_started_at
        )
        if released is None:
            logger.warning(
                "Feed claim lost during run, live version unchanged",
                feed_id=feed.id,
                version=version.version,
            )

        if not validation.valid_products:
            status = RUN_DEGRADED
        elif validation.invalid_products:
            status = RUN_PARTIAL
        else:
            status = RUN_SUCCESS

        logger.info(
            "Feed run finished",
            feed_id=feed.id,
            status=status,
            version=version.version,
        )
        return FeedRunResult(
            feed_id=feed.id,
            status=status,
            version_id=version.id,
            version=version.version,
            total_products=stats.total_products,
            valid_products=stats.valid_products,
            invalid_products=stats.invalid_products,
            health=summary.health.value,
            duration_seconds=round(summary.duration_seconds, 3),
        )


def get_feed_runner() -> FeedRunner:
    """Build a runner over the shared repository and the Shopify catalog."""
    return FeedRunner(get_feed_repository(), ShopifyCatalogClient())
