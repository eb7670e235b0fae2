"""Shared fixtures for feedsync tests."""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from feedsync.application.scheduler import FeedScheduler
from feedsync.application.version_manager import FeedVersionManager
from feedsync.domain.entities import Feed
from feedsync.domain.value_objects import FeedSettings, ProductRecord
from feedsync.infrastructure.config import Settings
from feedsync.infrastructure.repositories import (
    InMemoryFeedRepository,
    reset_feed_repository,
)

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeCatalog:
    """Catalog source returning canned products or raising an error."""

    def __init__(self, products: list[ProductRecord] | None = None) -> None:
        self.products = products or []
        self.error: Exception | None = None
        self.calls: list[tuple[FeedSettings, int]] = []
        self.closed = False

    async def fetch_products(self, selection: FeedSettings, limit: int) -> list[ProductRecord]:
        self.calls.append((selection, limit))
        if self.error is not None:
            raise self.error
        return self.products[:limit]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_repository():
    """Reset the shared feed repository around each test."""
    reset_feed_repository()
    yield
    reset_feed_repository()


@pytest.fixture
def app_settings() -> Settings:
    """Settings with the documented defaults."""
    return Settings(
        max_concurrent_feeds=3,
        retry_delays_minutes=[5, 15, 30],
        stale_processing_minutes=60,
        max_versions_to_keep=5,
        monitor_batch_size=100,
        health_degraded_threshold=0.1,
    )


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at FIXED_NOW."""
    return FakeClock()


@pytest.fixture
def repository() -> InMemoryFeedRepository:
    """Empty in-memory repository."""
    return InMemoryFeedRepository()


@pytest.fixture
def scheduler(repository, app_settings, clock) -> FeedScheduler:
    """Scheduler over the in-memory repository and fake clock."""
    return FeedScheduler(repository, app_settings, clock=clock)


@pytest.fixture
def version_manager(repository, app_settings) -> FeedVersionManager:
    """Version manager over the in-memory repository."""
    return FeedVersionManager(repository, app_settings)


@pytest.fixture
def catalog() -> FakeCatalog:
    """Catalog with no products."""
    return FakeCatalog()


@pytest.fixture
def make_product() -> Callable[..., ProductRecord]:
    """Factory for valid products; keyword arguments override fields."""

    base = ProductRecord(
        id="p-1",
        title="Organic Cotton T-Shirt",
        description="Soft organic cotton t-shirt",
        link="https://shop.example.com/products/organic-tee",
        image_link="https://cdn.example.com/organic-tee.jpg",
        price="19.99 USD",
        brand="Acme",
        condition="new",
        availability="in stock",
        gtin="012345678905",
        mpn="ACME-TEE-1",
    )

    def _make(**overrides: Any) -> ProductRecord:
        return replace(base, **overrides)

    return _make


@pytest.fixture
def make_feed(repository, clock) -> Callable[..., Any]:
    """Async factory storing a feed in the repository."""

    async def _make(**overrides: Any) -> Feed:
        settings = overrides.pop("settings", {})
        overrides.setdefault("created_at", clock())
        feed = Feed(
            shop_id=overrides.pop("shop_id", "shop-1"),
            name=overrides.pop("name", "Google Shopping US"),
            settings=FeedSettings.model_validate(settings),
            **overrides,
        )
        await repository.add_feed(feed)
        return feed

    return _make
