"""Per-run feed generation monitor.

Tracks product counters for one run, logs throughput every batch and
derives a health classification from the product failure rate.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from feedsync.monitoring import metrics

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 100
DEFAULT_DEGRADED_THRESHOLD = 0.1


class FeedHealth(str, Enum):
    """Health of a run derived from its product failure rate."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class FeedMetrics:
    """Mutable counters for one run."""

    feed_id: str
    shop_id: str
    format: str
    total_products: int
    processed_products: int = 0
    failed_products: int = 0
    start_time: float = 0.0


@dataclass(frozen=True)
class RunSummary:
    """Final metrics returned by FeedMonitor.complete()."""

    feed_id: str
    duration_seconds: float
    total_products: int
    processed_products: int
    failed_products: int
    products_per_second: float
    success: bool
    health: FeedHealth

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "feed_id": self.feed_id,
            "duration_seconds": round(self.duration_seconds, 3),
            "total_products": self.total_products,
            "processed_products": self.processed_products,
            "failed_products": self.failed_products,
            "products_per_second": round(self.products_per_second, 2),
            "success": self.success,
            "health": self.health.value,
        }


class FeedMonitor:
    """Accumulates counters for a single feed run.

    Example usage:
        monitor = FeedMonitor(feed.id, feed.shop_id, len(products), "XML")
        for product in products:
            monitor.product_processed(ok, product.id)
        summary = monitor.complete()
    """

    def __init__(
        self,
        feed_id: str,
        shop_id: str,
        total_products: int,
        format: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        degraded_threshold: float = DEFAULT_DEGRADED_THRESHOLD,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize monitor and log the run start.

        Args:
            feed_id: Feed being generated.
            shop_id: Owning shop.
            total_products: Expected number of products.
            format: Output format name.
            batch_size: Products per throughput log line.
            degraded_threshold: Failure rate at which health becomes FAILED.
            timer: Monotonic clock in seconds.
        """
        self._timer = timer
        self.batch_size = batch_size
        self.degraded_threshold = degraded_threshold
        self.metrics = FeedMetrics(
            feed_id=feed_id,
            shop_id=shop_id,
            format=format,
            total_products=total_products,
            start_time=timer(),
        )
        self._checkpoint = self.metrics.start_time
        self._batch_count = 0

        logger.info(
            "Feed generation started",
            feed_id=feed_id,
            shop_id=shop_id,
            total_products=total_products,
            format=format,
        )

    def product_processed(
        self,
        success: bool,
        product_id: str,
        error: BaseException | str | None = None,
    ) -> None:
        """Record the outcome of one product.

        Args:
            success: Whether the product made it into the feed.
            product_id: Product ID.
            error: Optional exception or message explaining the failure.
        """
        self.metrics.processed_products += 1
        outcome = "success" if success else "failed"
        metrics.products_processed_total.labels(
            format=self.metrics.format, outcome=outcome
        ).inc()

        if not success:
            self.metrics.failed_products += 1
            logger.warning(
                "Product processing failed",
                feed_id=self.metrics.feed_id,
                product_id=product_id,
                error=str(error) if error is not None else None,
            )
            if isinstance(error, BaseException):
                logger.error(
                    "Product processing exception",
                    feed_id=self.metrics.feed_id,
                    product_id=product_id,
                    exc_info=error,
                )

        self._batch_count += 1
        if self._batch_count >= self.batch_size:
            self._log_batch_progress()
            self._batch_count = 0

    def _log_batch_progress(self) -> None:
        now = self._timer()
        duration = now - self._checkpoint
        products_per_second = self.batch_size / duration if duration > 0 else 0.0

        logger.info(
            "Batch processed",
            feed_id=self.metrics.feed_id,
            batch_size=self.batch_size,
            duration_seconds=round(duration, 3),
            products_per_second=round(products_per_second, 2),
            progress=f"{self._percent_complete():.2f}%",
            failed_products=self.metrics.failed_products,
        )
        self._checkpoint = now

    def _percent_complete(self) -> float:
        if self.metrics.total_products <= 0:
            return 100.0
        return min(100.0, self.metrics.processed_products / self.metrics.total_products * 100)

    def complete(self) -> RunSummary:
        """Finalize the run and emit the completion event.

        Returns:
            RunSummary with duration, throughput and health.
        """
        duration = self._timer() - self.metrics.start_time
        success = self.metrics.failed_products == 0
        products_per_second = (
            self.metrics.processed_products / duration if duration > 0 else 0.0
        )

        summary = RunSummary(
            feed_id=self.metrics.feed_id,
            duration_seconds=duration,
            total_products=self.metrics.total_products,
            processed_products=self.metrics.processed_products,
            failed_products=self.metrics.failed_products,
            products_per_second=products_per_second,
            success=success,
            health=self.get_feed_health(),
        )

        if success:
            logger.info("Feed generation completed successfully", **summary.to_dict())
        else:
            logger.warning("Feed generation completed with errors", **summary.to_dict())

        metrics.feed_runs_total.labels(
            format=self.metrics.format,
            outcome="success" if success else "degraded",
        ).inc()
        metrics.feed_run_duration_seconds.labels(format=self.metrics.format).observe(duration)

        return summary

    def get_feed_health(self) -> FeedHealth:
        """Classify the run by failure rate.

        Returns:
            HEALTHY with no failures (or nothing processed yet), DEGRADED
            below the threshold, FAILED at or above it.
        """
        if self.metrics.processed_products == 0:
            return FeedHealth.HEALTHY

        failure_rate = self.metrics.failed_products / self.metrics.processed_products
        if failure_rate == 0:
            return FeedHealth.HEALTHY
        if failure_rate < self.degraded_threshold:
            return FeedHealth.DEGRADED
        return FeedHealth.FAILED

    def update_total_products(self, total: int) -> None:
        """Correct the expected product count once it is known."""
        self.metrics.total_products = total
        logger.info(
            "Updated total products count",
            feed_id=self.metrics.feed_id,
            total_products=total,
        )

    def update_progress(self, progress: float) -> float:
        """Report externally driven progress.

        Args:
            progress: Percentage complete; clamped to [0, 100].

        Returns:
            The clamped value that was reported.
        """
        current = min(100.0, max(0.0, progress))
        logger.info(
            "Feed generation progress",
            feed_id=self.metrics.feed_id,
            progress=f"{current:.2f}%",
        )
        return current
