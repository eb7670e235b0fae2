"""Feed persistence.

Defines the FeedRepository contract used by the scheduler, version manager
and feed runner, with an in-memory implementation (tests, local runs) and an
async SQLAlchemy implementation.

Status changes go through ``compare_and_swap`` so that concurrent
schedulers, in one process or many, cannot both claim the same feed. The
swap also matches the ``processing_started_at`` lease, so a run can only
release or fail its own claim.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedsync.domain.entities import Feed, FeedVersion, PlanTier, VersionStats
from feedsync.domain.exceptions import VersionConflictError
from feedsync.domain.state_machines import FeedStatus, VersionStatus
from feedsync.domain.value_objects import FeedFormat
from feedsync.infrastructure.config import settings
from feedsync.infrastructure.models import FeedModel, FeedVersionModel

logger = structlog.get_logger()


# ============================================================================
# Repository Contract
# ============================================================================


class FeedRepository(ABC):
    """Storage contract for feeds and their version history."""

    # Feeds

    @abstractmethod
    async def add_feed(self, feed: Feed) -> Feed:
        """Insert a new feed."""

    @abstractmethod
    async def get_feed(self, feed_id: str) -> Feed | None:
        """Get feed by ID."""

    @abstractmethod
    async def list_feeds(self, status: FeedStatus | None = None) -> list[Feed]:
        """List feeds, optionally filtered by status, oldest first."""

    @abstractmethod
    async def compare_and_swap(
        self,
        feed: Feed,
        expected_status: FeedStatus,
        expected_lease: datetime | None = None,
    ) -> bool:
        """Persist ``feed`` only if the stored status and lease are unchanged.

        Args:
            feed: Feed state to write.
            expected_status: Status the stored feed must have.
            expected_lease: ``processing_started_at`` the stored feed must
                have (None matches only an unset lease).

        Returns:
            True if the write happened, False if the stored feed differed
            or no longer exists.
        """

    @abstractmethod
    async def count_by_status(self, status: FeedStatus) -> int:
        """Count feeds in a status."""

    @abstractmethod
    async def list_stale_processing(self, started_before: datetime) -> list[Feed]:
        """List PROCESSING feeds claimed before a cutoff or with no claim time."""

    @abstractmethod
    async def set_live_version(self, feed_id: str, version_id: str) -> None:
        """Point a feed's served content at a version."""

    # Versions

    @abstractmethod
    async def add_version(self, version: FeedVersion) -> FeedVersion:
        """Insert a version.

        Raises:
            VersionConflictError: If the feed already has this version number.
        """

    @abstractmethod
    async def get_version(self, version_id: str) -> FeedVersion | None:
        """Get version by ID."""

    @abstractmethod
    async def list_versions(
        self, feed_id: str, include_archived: bool = True
    ) -> list[FeedVersion]:
        """List versions of a feed, newest first."""

    @abstractmethod
    async def latest_version_number(self, feed_id: str) -> int:
        """Highest version number of a feed, 0 when it has none."""

    @abstractmethod
    async def archive_versions(self, version_ids: Sequence[str]) -> int:
        """Mark versions archived; returns how many changed."""


# ============================================================================
# In-Memory Repository
# ============================================================================


class InMemoryFeedRepository(FeedRepository):
    """In-memory repository for feeds and versions.

    A single asyncio lock makes every read-modify-write atomic within the
    event loop, which is all the guarantee a single process needs.
    """

    def __init__(self) -> None:
        self._feeds: dict[str, Feed] = {}
        self._versions: dict[str, FeedVersion] = {}
        self._lock = asyncio.Lock()

    async def add_feed(self, feed: Feed) -> Feed:
        async with self._lock:
            self._feeds[feed.id] = copy.deepcopy(feed)
        return feed

    async def get_feed(self, feed_id: str) -> Feed | None:
        feed = self._feeds.get(feed_id)
        return copy.deepcopy(feed) if feed else None

    async def list_feeds(self, status: FeedStatus | None = None) -> list[Feed]:
        feeds = [f for f in self._feeds.values() if status is None or f.status == status]
        feeds.sort(key=lambda f: f.created_at)
        return [copy.deepcopy(f) for f in feeds]

    async def compare_and_swap(
        self,
        feed: Feed,
        expected_status: FeedStatus,
        expected_lease: datetime | None = None,
    ) -> bool:
        async with self._lock:
            stored = self._feeds.get(feed.id)
            if (
                stored is None
                or stored.status != expected_status
                or stored.processing_started_at != expected_lease
            ):
                return False
            self._feeds[feed.id] = copy.deepcopy(feed)
            return True

    async def count_by_status(self, status: FeedStatus) -> int:
        return sum(1 for f in self._feeds.values() if f.status == status)

    async def list_stale_processing(self, started_before: datetime) -> list[Feed]:
        return [
            copy.deepcopy(f)
            for f in self._feeds.values()
            if f.status == FeedStatus.PROCESSING
            and (f.processing_started_at is None or f.processing_started_at < started_before)
        ]

    async def set_live_version(self, feed_id: str, version_id: str) -> None:
        async with self._lock:
            stored = self._feeds.get(feed_id)
            if stored is not None:
                self._feeds[feed_id] = stored.with_changes(live_version_id=version_id)

    async def add_version(self, version: FeedVersion) -> FeedVersion:
        async with self._lock:
            for existing in self._versions.values():
                if existing.feed_id == version.feed_id and existing.version == version.version:
                    raise VersionConflictError(version.feed_id, version.version)
            self._versions[version.id] = version
        return version

    async def get_version(self, version_id: str) -> FeedVersion | None:
        return self._versions.get(version_id)

    async def list_versions(
        self, feed_id: str, include_archived: bool = True
    ) -> list[FeedVersion]:
        versions = [
            v
            for v in self._versions.values()
            if v.feed_id == feed_id
            and (include_archived or v.status == VersionStatus.ACTIVE)
        ]
        versions.sort(key=lambda v: v.version, reverse=True)
        return versions

    async def latest_version_number(self, feed_id: str) -> int:
        numbers = [v.version for v in self._versions.values() if v.feed_id == feed_id]
        return max(numbers, default=0)

    async def archive_versions(self, version_ids: Sequence[str]) -> int:
        changed = 0
        async with self._lock:
            for version_id in version_ids:
                version = self._versions.get(version_id)
                if version is not None and version.status == VersionStatus.ACTIVE:
                    self._versions[version_id] = version.archived()
                    changed += 1
        return changed


# ============================================================================
# SQLAlchemy Repository
# ============================================================================


def _aware(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes returned by drivers without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlAlchemyFeedRepository(FeedRepository):
    """Repository backed by an async SQLAlchemy database.

    Opens one short transaction per operation, which suits long-lived
    services such as the scheduler.

    Example usage:
        repo = SqlAlchemyFeedRepository(get_session_factory())
        feed = await repo.get_feed(feed_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize repository with a session factory.

        Args:
            session_factory: Async SQLAlchemy session factory.
        """
        self.session_factory = session_factory

    # Mapping

    @staticmethod
    def _to_feed(model: FeedModel) -> Feed:
        return Feed(
            id=model.id,
            shop_id=model.shop_id,
            name=model.name,
            settings=Feed.parse_settings(model.settings, feed_id=model.id),
            status=FeedStatus(model.status),
            plan_tier=PlanTier(model.plan_tier),
            last_sync=_aware(model.last_sync),
            processing_started_at=_aware(model.processing_started_at),
            live_version_id=model.live_version_id,
            created_at=_aware(model.created_at),
            updated_at=_aware(model.updated_at),
        )

    @staticmethod
    def _feed_values(feed: Feed) -> dict:
        return {
            "shop_id": feed.shop_id,
            "name": feed.name,
            "plan_tier": feed.plan_tier.value,
            "settings": feed.settings.to_storage(),
            "status": feed.status.value,
            "last_sync": feed.last_sync,
            "processing_started_at": feed.processing_started_at,
            "live_version_id": feed.live_version_id,
            "updated_at": feed.updated_at,
        }

    @staticmethod
    def _to_version(model: FeedVersionModel) -> FeedVersion:
        return FeedVersion(
            id=model.id,
            feed_id=model.feed_id,
            version=model.version,
            content=model.content,
            format=FeedFormat(model.format),
            stats=VersionStats.from_dict(model.stats),
            status=VersionStatus(model.status),
            rollback_from=model.rollback_from,
            note=model.note,
            created_by=model.created_by,
            created_at=_aware(model.created_at),
        )

    # Feeds

    async def add_feed(self, feed: Feed) -> Feed:
        async with self.session_factory() as session, session.begin():
            session.add(
                FeedModel(id=feed.id, created_at=feed.created_at, **self._feed_values(feed))
            )
        return feed

    async def get_feed(self, feed_id: str) -> Feed | None:
        async with self.session_factory() as session:
            model = await session.get(FeedModel, feed_id)
            return self._to_feed(model) if model else None

    async def list_feeds(self, status: FeedStatus | None = None) -> list[Feed]:
        query = select(FeedModel).order_by(FeedModel.created_at.asc())
        if status is not None:
            query = query.where(FeedModel.status == status.value)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._to_feed(m) for m in result.scalars().all()]

    async def compare_and_swap(
        self,
        feed: Feed,
        expected_status: FeedStatus,
        expected_lease: datetime | None = None,
    ) -> bool:
        if expected_lease is None:
            lease_matches = FeedModel.processing_started_at.is_(None)
        else:
            lease_matches = FeedModel.processing_started_at == expected_lease
        statement = (
            update(FeedModel)
            .where(
                FeedModel.id == feed.id,
                FeedModel.status == expected_status.value,
                lease_matches,
            )
            .values(**self._feed_values(feed))
        )
        async with self.session_factory() as session, session.begin():
            result = await session.execute(statement)
        return result.rowcount == 1

    async def count_by_status(self, status: FeedStatus) -> int:
        query = select(func.count(FeedModel.id)).where(FeedModel.status == status.value)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def list_stale_processing(self, started_before: datetime) -> list[Feed]:
        query = select(FeedModel).where(
            FeedModel.status == FeedStatus.PROCESSING.value,
            (FeedModel.processing_started_at.is_(None))
            | (FeedModel.processing_started_at < started_before),
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._to_feed(m) for m in result.scalars().all()]

    async def set_live_version(self, feed_id: str, version_id: str) -> None:
        statement = (
            update(FeedModel)
            .where(FeedModel.id == feed_id)
            .values(live_version_id=version_id, updated_at=datetime.now(timezone.utc))
        )
        async with self.session_factory() as session, session.begin():
            await session.execute(statement)

    # Versions

    async def add_version(self, version: FeedVersion) -> FeedVersion:
        model = FeedVersionModel(
            id=version.id,
            feed_id=version.feed_id,
            version=version.version,
            content=version.content,
            format=version.format.value,
            stats=version.stats.to_dict(),
            status=version.status.value,
            rollback_from=version.rollback_from,
            note=version.note,
            created_by=version.created_by,
            created_at=version.created_at,
        )
        try:
            async with self.session_factory() as session, session.begin():
                session.add(model)
        except IntegrityError as e:
            raise VersionConflictError(version.feed_id, version.version) from e
        return version

    async def get_version(self, version_id: str) -> FeedVersion | None:
        async with self.session_factory() as session:
            model = await session.get(FeedVersionModel, version_id)
            return self._to_version(model) if model else None

    async def list_versions(
        self, feed_id: str, include_archived: bool = True
    ) -> list[FeedVersion]:
        query = (
            select(FeedVersionModel)
            .where(FeedVersionModel.feed_id == feed_id)
            .order_by(FeedVersionModel.version.desc())
        )
        if not include_archived:
            query = query.where(FeedVersionModel.status == VersionStatus.ACTIVE.value)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [self._to_version(m) for m in result.scalars().all()]

    async def latest_version_number(self, feed_id: str) -> int:
        query = select(func.max(FeedVersionModel.version)).where(
            FeedVersionModel.feed_id == feed_id
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one() or 0

    async def archive_versions(self, version_ids: Sequence[str]) -> int:
        if not version_ids:
            return 0
        statement = (
            update(FeedVersionModel)
            .where(
                FeedVersionModel.id.in_(list(version_ids)),
                FeedVersionModel.status == VersionStatus.ACTIVE.value,
            )
            .values(status=VersionStatus.ARCHIVED.value)
        )
        async with self.session_factory() as session, session.begin():
            result = await session.execute(statement)
        return result.rowcount


# ============================================================================
# Repository Provider
# ============================================================================


_feed_repo: FeedRepository | None = None


def get_feed_repository() -> FeedRepository:
    """Get feed repository singleton for the configured backend."""
    global _feed_repo
    if _feed_repo is None:
        if settings.repository_backend == "database":
            from feedsync.infrastructure.database import get_session_factory

            _feed_repo = SqlAlchemyFeedRepository(get_session_factory())
        else:
            _feed_repo = InMemoryFeedRepository()
        logger.info("Feed repository initialized", backend=settings.repository_backend)
    return _feed_repo


def reset_feed_repository() -> None:
    """Reset feed repository (for testing)."""
    global _feed_repo
    _feed_repo = None
