"""Domain layer - Entities, value objects, state machines, exceptions.

This module exports the core domain building blocks:

- **Entities**: Objects with identity (Feed, FeedVersion)
- **Value Objects**: Immutable values (FeedSettings, ProductRecord, ValidationIssue)
- **State Machines**: Deterministic state transitions (FeedStatus, VersionStatus)
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from feedsync.domain import Feed, FeedSettings, FeedFormat

    feed = Feed(
        shop_id="shop-1",
        name="Google Shopping UK",
        settings=FeedSettings(country="GB", currency="GBP", format=FeedFormat.CSV),
    )
"""

# Entities
from feedsync.domain.entities import Feed, FeedVersion, PlanTier, VersionStats, utcnow

# Exceptions
from feedsync.domain.exceptions import (
    DomainError,
    FeedError,
    FeedNotFoundError,
    FeedVersionError,
    FeedVersionNotFoundError,
    InvalidFeedSettingsError,
    InvalidStateTransitionError,
    TierLimitExceededError,
    VersionConflictError,
)

# State Machines
from feedsync.domain.state_machines import FeedStatus, VersionStatus, validate_feed_transition

# Value Objects
from feedsync.domain.value_objects import (
    FeedFormat,
    FeedSettings,
    IssueSeverity,
    ProductRecord,
    UpdateFrequency,
    ValidationIssue,
)

__all__ = [
    # Entities
    "Feed",
    "FeedVersion",
    "PlanTier",
    "VersionStats",
    "utcnow",
    # Value Objects
    "FeedFormat",
    "FeedSettings",
    "IssueSeverity",
    "ProductRecord",
    "UpdateFrequency",
    "ValidationIssue",
    # State Machines
    "FeedStatus",
    "VersionStatus",
    "validate_feed_transition",
    # Exceptions
    "DomainError",
    "FeedError",
    "FeedNotFoundError",
    "FeedVersionError",
    "FeedVersionNotFoundError",
    "InvalidFeedSettingsError",
    "InvalidStateTransitionError",
    "TierLimitExceededError",
    "VersionConflictError",
]
