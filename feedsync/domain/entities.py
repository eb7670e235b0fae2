"""Domain entities for feedsync.

Entities are domain objects with identity that persists across state changes.
This module contains the Feed aggregate and the immutable FeedVersion record.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from feedsync.domain.exceptions import InvalidFeedSettingsError
from feedsync.domain.state_machines import FeedStatus, VersionStatus, validate_feed_transition
from feedsync.domain.value_objects import FeedFormat, FeedSettings, IssueSeverity, ValidationIssue


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# Plan Tier
# ============================================================================


class PlanTier(str, Enum):
    """Subscription plan of the shop that owns a feed."""

    BASIC = "Basic"
    PROFESSIONAL = "Professional"
    ADVANCED = "Advanced"


# ============================================================================
# Feed Aggregate
# ============================================================================


@dataclass(kw_only=True)
class Feed:
    """A configured, recurring export of a product catalog subset.

    The status field is both the business status and the single-flight
    guard for generation runs. Persisted changes to it go through the
    repository's compare-and-swap so two schedulers cannot claim the
    same feed.

    Attributes:
        id: Unique feed identifier.
        shop_id: Owning shop.
        name: Human readable name.
        settings: Validated feed configuration.
        status: Lifecycle status.
        plan_tier: Plan tier of the owning shop.
        last_sync: Completion time of the last successful run.
        processing_started_at: When the current run claimed the feed.
        live_version_id: Version currently served to marketplaces.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    shop_id: str
    name: str
    settings: FeedSettings = field(default_factory=FeedSettings)
    status: FeedStatus = FeedStatus.ACTIVE
    plan_tier: PlanTier = PlanTier.BASIC
    last_sync: datetime | None = None
    processing_started_at: datetime | None = None
    live_version_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate settings and the retry invariant."""
        if not isinstance(self.settings, FeedSettings):
            self.settings = self.parse_settings(self.settings, feed_id=self.id)
        if (
            self.status != FeedStatus.FAILED
            and self.settings.retry_count > self.settings.max_retries
        ):
            raise InvalidFeedSettingsError(
                f"retry_count {self.settings.retry_count} exceeds "
                f"max_retries {self.settings.max_retries}",
                feed_id=self.id,
            )

    @staticmethod
    def parse_settings(raw: Any, feed_id: str | None = None) -> FeedSettings:
        """Validate a raw settings mapping.

        Args:
            raw: Settings as loaded from storage or an API request.
            feed_id: Feed ID for error context.

        Returns:
            Validated FeedSettings.

        Raises:
            InvalidFeedSettingsError: If the mapping is malformed.
        """
        try:
            return FeedSettings.model_validate(raw or {})
        except ValidationError as e:
            raise InvalidFeedSettingsError(str(e), feed_id=feed_id) from e

    def transition_to(self, target: FeedStatus) -> "Feed":
        """Return a copy of this feed in the target status.

        Args:
            target: Target status.

        Returns:
            New Feed instance; this one is left untouched.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed.
        """
        validate_feed_transition(self.id, self.status, target)
        return replace(self, status=target, updated_at=utcnow())

    def with_changes(self, **changes: Any) -> "Feed":
        """Return a copy with the given attributes replaced."""
        changes.setdefault("updated_at", utcnow())
        return replace(self, **changes)


# ============================================================================
# Version Stats
# ============================================================================


@dataclass(frozen=True)
class VersionStats:
    """Validation statistics recorded alongside a feed version."""

    total_products: int = 0
    valid_products: int = 0
    invalid_products: int = 0
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def error_fields(self) -> set[str]:
        """Distinct field names that produced errors."""
        return {issue.field for issue in self.errors}

    @property
    def warning_fields(self) -> set[str]:
        """Distinct field names that produced warnings."""
        return {issue.field for issue in self.warnings}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "total_products": self.total_products,
            "valid_products": self.valid_products,
            "invalid_products": self.invalid_products,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "VersionStats":
        """Create from a stored dictionary."""
        data = data or {}
        return cls(
            total_products=int(data.get("total_products", 0)),
            valid_products=int(data.get("valid_products", 0)),
            invalid_products=int(data.get("invalid_products", 0)),
            errors=tuple(
                ValidationIssue.from_dict(e, IssueSeverity.ERROR)
                for e in data.get("errors", [])
            ),
            warnings=tuple(
                ValidationIssue.from_dict(w, IssueSeverity.WARNING)
                for w in data.get("warnings", [])
            ),
        )


# ============================================================================
# Feed Version
# ============================================================================


@dataclass(frozen=True, kw_only=True)
class FeedVersion:
    """One immutable rendering of a feed.

    Only the retention status may change after creation, and only from
    ACTIVE to ARCHIVED; the repository does that by storing a replaced copy.

    Attributes:
        id: Unique version identifier.
        feed_id: Owning feed.
        version: Per-feed sequence number starting at 1.
        content: Rendered artifact served verbatim.
        format: Output format of the content.
        stats: Validation statistics of the run that produced it.
        status: Retention status.
        rollback_from: Version ID this one was restored from.
        note: Free-form note.
        created_by: Actor that created the version.
        created_at: Creation time.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    feed_id: str
    version: int
    content: str
    format: FeedFormat
    stats: VersionStats = field(default_factory=VersionStats)
    status: VersionStatus = VersionStatus.ACTIVE
    rollback_from: str | None = None
    note: str | None = None
    created_by: str = "system"
    created_at: datetime = field(default_factory=utcnow)

    def archived(self) -> "FeedVersion":
        """Return an archived copy of this version."""
        if self.status == VersionStatus.ARCHIVED:
            return self
        return replace(self, status=VersionStatus.ARCHIVED)
