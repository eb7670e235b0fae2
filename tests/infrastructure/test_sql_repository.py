"""Tests for the SQLAlchemy feed repository against SQLite."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feedsync.application.scheduler import FeedScheduler
from feedsync.application.version_manager import FeedVersionManager
from feedsync.domain.entities import Feed, FeedVersion, VersionStats
from feedsync.domain.exceptions import VersionConflictError
from feedsync.domain.state_machines import FeedStatus, VersionStatus
from feedsync.domain.value_objects import FeedFormat, FeedSettings, ValidationIssue
from feedsync.infrastructure.database import create_tables
from feedsync.infrastructure.repositories import SqlAlchemyFeedRepository


@pytest_asyncio.fixture
async def sql_repository(tmp_path):
    """Repository over a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'feeds.db'}")
    await create_tables(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield SqlAlchemyFeedRepository(factory)
    finally:
        await engine.dispose()


def new_feed(clock, **overrides) -> Feed:
    overrides.setdefault("created_at", clock())
    return Feed(
        shop_id=overrides.pop("shop_id", "shop-1"),
        name=overrides.pop("name", "Feed"),
        **overrides,
    )


class TestSqlFeeds:
    """Tests for feed persistence."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, sql_repository, clock) -> None:
        """Feeds round-trip with settings and aware datetimes."""
        feed = new_feed(
            clock,
            settings=FeedSettings(format=FeedFormat.CSV, product_ids=["1", "2"]),
            last_sync=clock() - timedelta(hours=3),
        )
        await sql_repository.add_feed(feed)

        stored = await sql_repository.get_feed(feed.id)

        assert stored.settings == feed.settings
        assert stored.status == FeedStatus.ACTIVE
        assert stored.last_sync == feed.last_sync
        assert stored.last_sync.tzinfo is not None
        assert await sql_repository.get_feed("missing") is None

    @pytest.mark.asyncio
    async def test_compare_and_swap(self, sql_repository, clock) -> None:
        """Writes only happen when the stored status matches."""
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)
        claimed = feed.transition_to(FeedStatus.PROCESSING)

        assert await sql_repository.compare_and_swap(claimed, FeedStatus.ACTIVE)
        assert not await sql_repository.compare_and_swap(claimed, FeedStatus.ACTIVE)
        assert await sql_repository.count_by_status(FeedStatus.PROCESSING) == 1

    @pytest.mark.asyncio
    async def test_compare_and_swap_checks_lease(self, sql_repository, clock) -> None:
        """A processing feed is only released by the holder of its lease."""
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)
        lease = clock()
        claimed = feed.transition_to(FeedStatus.PROCESSING).with_changes(
            processing_started_at=lease
        )
        assert await sql_repository.compare_and_swap(claimed, FeedStatus.ACTIVE)

        released = claimed.transition_to(FeedStatus.ACTIVE).with_changes(
            processing_started_at=None
        )
        older_lease = lease - timedelta(hours=1)
        assert not await sql_repository.compare_and_swap(
            released, FeedStatus.PROCESSING, older_lease
        )
        assert not await sql_repository.compare_and_swap(released, FeedStatus.PROCESSING)
        assert await sql_repository.compare_and_swap(released, FeedStatus.PROCESSING, lease)

        stored = await sql_repository.get_feed(feed.id)
        assert stored.status == FeedStatus.ACTIVE
        assert stored.processing_started_at is None

    @pytest.mark.asyncio
    async def test_list_feeds(self, sql_repository, clock) -> None:
        """Listing is oldest first and filters by status."""
        first = new_feed(clock, name="first")
        second = new_feed(clock, name="second", status=FeedStatus.PAUSED)
        second.created_at = clock() + timedelta(seconds=1)
        await sql_repository.add_feed(second)
        await sql_repository.add_feed(first)

        assert [f.name for f in await sql_repository.list_feeds()] == ["first", "second"]
        paused = await sql_repository.list_feeds(status=FeedStatus.PAUSED)
        assert [f.name for f in paused] == ["second"]

    @pytest.mark.asyncio
    async def test_list_stale_processing(self, sql_repository, clock) -> None:
        """Only processing feeds with an old or missing lease are stale."""
        old = new_feed(
            clock, status=FeedStatus.PROCESSING, processing_started_at=clock() - timedelta(hours=2)
        )
        fresh = new_feed(clock, status=FeedStatus.PROCESSING, processing_started_at=clock())
        unleased = new_feed(clock, status=FeedStatus.PROCESSING)
        for feed in (old, fresh, unleased):
            await sql_repository.add_feed(feed)

        stale = await sql_repository.list_stale_processing(clock() - timedelta(hours=1))
        assert {f.id for f in stale} == {old.id, unleased.id}


class TestSqlVersions:
    """Tests for version persistence."""

    @pytest.mark.asyncio
    async def test_version_round_trip(self, sql_repository, clock) -> None:
        """Versions keep content, format and stats."""
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)
        version = FeedVersion(
            feed_id=feed.id,
            version=1,
            content="id\tprice\n",
            format=FeedFormat.TSV,
            stats=VersionStats(
                total_products=2,
                valid_products=1,
                invalid_products=1,
                errors=(ValidationIssue("price", "Missing required field: price", "9"),),
            ),
        )
        await sql_repository.add_version(version)

        stored = await sql_repository.get_version(version.id)
        assert stored.content == "id\tprice\n"
        assert stored.format == FeedFormat.TSV
        assert stored.stats == version.stats
        assert await sql_repository.latest_version_number(feed.id) == 1
        assert await sql_repository.latest_version_number("other") == 0

    @pytest.mark.asyncio
    async def test_duplicate_number_conflicts(self, sql_repository, clock) -> None:
        """The unique constraint surfaces as VersionConflictError."""
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)
        await sql_repository.add_version(
            FeedVersion(feed_id=feed.id, version=1, content="a", format=FeedFormat.XML)
        )

        with pytest.raises(VersionConflictError):
            await sql_repository.add_version(
                FeedVersion(feed_id=feed.id, version=1, content="b", format=FeedFormat.XML)
            )

    @pytest.mark.asyncio
    async def test_archive_and_list(self, sql_repository, clock) -> None:
        """Archived versions drop out of the active listing only."""
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)
        versions = [
            FeedVersion(feed_id=feed.id, version=n, content=str(n), format=FeedFormat.XML)
            for n in (1, 2, 3)
        ]
        for version in versions:
            await sql_repository.add_version(version)

        assert await sql_repository.archive_versions([versions[0].id]) == 1
        assert await sql_repository.archive_versions([versions[0].id]) == 0

        everything = await sql_repository.list_versions(feed.id)
        active = await sql_repository.list_versions(feed.id, include_archived=False)
        assert [v.version for v in everything] == [3, 2, 1]
        assert [v.version for v in active] == [3, 2]
        assert everything[-1].status == VersionStatus.ARCHIVED


class TestSqlServices:
    """Scheduler and version manager over the SQL repository."""

    @pytest.mark.asyncio
    async def test_run_lifecycle(self, sql_repository, app_settings, clock) -> None:
        """Claim, version and release work end to end."""
        scheduler = FeedScheduler(sql_repository, app_settings, clock=clock)
        manager = FeedVersionManager(sql_repository, app_settings)
        feed = new_feed(clock)
        await sql_repository.add_feed(feed)

        assert await scheduler.try_start_feed(feed.id) is not None
        assert await scheduler.try_start_feed(feed.id) is None

        version = await manager.create_version(feed.id, "<rss/>", FeedFormat.XML, VersionStats())
        await scheduler.record_success(feed.id, version.id)

        stored = await sql_repository.get_feed(feed.id)
        assert stored.status == FeedStatus.ACTIVE
        assert stored.live_version_id == version.id
        assert stored.last_sync == clock()
