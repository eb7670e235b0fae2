"""Feed version management.

Every successful run appends a numbered, immutable FeedVersion. Only the
newest versions stay ACTIVE; older ones are archived, never deleted.
Rollback appends a copy of an earlier version instead of rewriting
history.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import structlog

from feedsync.domain.entities import FeedVersion, VersionStats
from feedsync.domain.exceptions import (
    FeedNotFoundError,
    FeedVersionNotFoundError,
    VersionConflictError,
)
from feedsync.domain.state_machines import VersionStatus
from feedsync.domain.value_objects import FeedFormat
from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.config import settings as default_settings
from feedsync.infrastructure.repositories import FeedRepository
from feedsync.monitoring import metrics

logger = structlog.get_logger()

# Fresh version numbers tried when a concurrent insert takes ours
CREATE_ATTEMPTS = 3


@dataclass
class VersionComparison:
    """Differences between two versions, expressed as b - a."""

    version_a: str
    version_b: str
    product_diff: dict[str, int]
    errors_added: list[str] = field(default_factory=list)
    errors_removed: list[str] = field(default_factory=list)
    warnings_added: list[str] = field(default_factory=list)
    warnings_removed: list[str] = field(default_factory=list)
    time_gap: timedelta = timedelta(0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "version_a": self.version_a,
            "version_b": self.version_b,
            "product_diff": dict(self.product_diff),
            "error_diff": {"added": self.errors_added, "removed": self.errors_removed},
            "warning_diff": {
                "added": self.warnings_added,
                "removed": self.warnings_removed,
            },
            "time_gap_seconds": self.time_gap.total_seconds(),
        }


class FeedVersionManager:
    """Append-only version history per feed.

    Example usage:
        manager = FeedVersionManager(repository)
        version = await manager.create_version(feed.id, content, FeedFormat.XML, stats)
        restored = await manager.rollback(feed.id, older.id)
    """

    def __init__(
        self,
        repository: FeedRepository,
        settings: Settings = default_settings,
    ) -> None:
        """Initialize version manager.

        Args:
            repository: Feed repository.
            settings: Application settings (retention).
        """
        self.repository = repository
        self.max_versions_to_keep = settings.max_versions_to_keep

    async def create_version(
        self,
        feed_id: str,
        content: str,
        format: FeedFormat,
        stats: VersionStats,
        note: str | None = None,
        rollback_from: str | None = None,
        created_by: str = "system",
    ) -> FeedVersion:
        """Append a new version to a feed's history.

        Args:
            feed_id: Feed identifier.
            content: Rendered feed document.
            format: Format of the document.
            stats: Validation statistics of the run.
            note: Optional note.
            rollback_from: Version ID this one restores.
            created_by: Actor creating the version.

        Returns:
            The stored version, numbered one past the current maximum.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            VersionConflictError: If every attempt lost a numbering race.
        """
        if await self.repository.get_feed(feed_id) is None:
            raise FeedNotFoundError(feed_id)

        version: FeedVersion | None = None
        for attempt in range(1, CREATE_ATTEMPTS + 1):
            number = await self.repository.latest_version_number(feed_id) + 1
            candidate = FeedVersion(
                feed_id=feed_id,
                version=number,
                content=content,
                format=format,
                stats=stats,
                rollback_from=rollback_from,
                note=note,
                created_by=created_by,
            )
            try:
                version = await self.repository.add_version(candidate)
                break
            except VersionConflictError:
                logger.warning(
                    "Version number taken, retrying",
                    feed_id=feed_id,
                    version=number,
                    attempt=attempt,
                )
                if attempt == CREATE_ATTEMPTS:
                    logger.error("Failed to create feed version", feed_id=feed_id)
                    raise

        await self._cleanup_old_versions(feed_id)

        metrics.feed_versions_created_total.labels(
            format=format.value,
            kind="rollback" if rollback_from else "run",
        ).inc()
        logger.info(
            "Created new feed version",
            feed_id=feed_id,
            version_id=version.id,
            version=version.version,
        )
        return version

    async def _cleanup_old_versions(self, feed_id: str) -> None:
        """Archive versions beyond the newest ``max_versions_to_keep``.

        Failures are logged and never propagate.
        """
        try:
            versions = await self.repository.list_versions(feed_id)
            stale = [
                v.id
                for v in versions[self.max_versions_to_keep :]
                if v.status == VersionStatus.ACTIVE
            ]
            if not stale:
                return

            archived = await self.repository.archive_versions(stale)
            logger.info(
                "Archived old feed versions",
                feed_id=feed_id,
                archived_count=archived,
            )
        except Exception as e:
            logger.warning(
                "Failed to cleanup old versions",
                feed_id=feed_id,
                error=str(e),
            )

    async def get_version(self, version_id: str) -> FeedVersion:
        """Get a version by ID.

        Raises:
            FeedVersionNotFoundError: If the version does not exist.
        """
        version = await self.repository.get_version(version_id)
        if version is None:
            raise FeedVersionNotFoundError(version_id)
        return version

    async def get_version_history(
        self, feed_id: str, include_archived: bool = True
    ) -> list[FeedVersion]:
        """Versions of a feed, newest first."""
        return await self.repository.list_versions(feed_id, include_archived=include_archived)

    async def rollback(self, feed_id: str, target_version_id: str) -> FeedVersion:
        """Restore an earlier version as the newest one.

        Creates a new version carrying the target's content, format and
        stats and makes it the feed's live version.

        Args:
            feed_id: Feed identifier.
            target_version_id: Version to restore.

        Returns:
            The newly created version.

        Raises:
            FeedNotFoundError: If the feed does not exist.
            FeedVersionNotFoundError: If the target does not exist or
                belongs to another feed.
        """
        target = await self.repository.get_version(target_version_id)
        if target is None or target.feed_id != feed_id:
            raise FeedVersionNotFoundError(target_version_id, feed_id=feed_id)

        restored = await self.create_version(
            feed_id,
            target.content,
            target.format,
            target.stats,
            note=f"Rolled back from version {target.version}",
            rollback_from=target.id,
        )
        await self.repository.set_live_version(feed_id, restored.id)

        logger.info(
            "Successfully rolled back feed",
            feed_id=feed_id,
            from_version=target.version,
            to_version=restored.version,
        )
        return restored

    async def compare_versions(self, version_a_id: str, version_b_id: str) -> VersionComparison:
        """Compare two versions.

        Args:
            version_a_id: Baseline version.
            version_b_id: Version compared against the baseline.

        Returns:
            VersionComparison with counts and field sets as b - a.

        Raises:
            FeedVersionNotFoundError: If either version does not exist.
        """
        a = await self.get_version(version_a_id)
        b = await self.get_version(version_b_id)

        return VersionComparison(
            version_a=a.id,
            version_b=b.id,
            product_diff={
                "total": b.stats.total_products - a.stats.total_products,
                "valid": b.stats.valid_products - a.stats.valid_products,
                "invalid": b.stats.invalid_products - a.stats.invalid_products,
            },
            errors_added=sorted(b.stats.error_fields - a.stats.error_fields),
            errors_removed=sorted(a.stats.error_fields - b.stats.error_fields),
            warnings_added=sorted(b.stats.warning_fields - a.stats.warning_fields),
            warnings_removed=sorted(a.stats.warning_fields - b.stats.warning_fields),
            time_gap=b.created_at - a.created_at,
        )
