"""Domain exceptions.

All domain-level errors that represent business rule violations.
These exceptions are raised by entities, state machines and services
when invariants are violated or invalid operations are attempted.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Feed", "FeedVersion").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


# ============================================================================
# Feed Errors
# ============================================================================


class FeedError(DomainError):
    """Base class for feed-related errors."""

    pass


class FeedNotFoundError(FeedError):
    """Raised when a feed does not exist."""

    def __init__(self, feed_id: str) -> None:
        """Initialize feed not found error.

        Args:
            feed_id: ID of the missing feed.
        """
        super().__init__(
            f"Feed not found: {feed_id}",
            details={"feed_id": feed_id},
        )


class InvalidFeedSettingsError(FeedError):
    """Raised when stored or submitted feed settings fail validation."""

    def __init__(self, reason: str, feed_id: str | None = None) -> None:
        """Initialize invalid settings error.

        Args:
            reason: Explanation of what is wrong.
            feed_id: Feed the settings belong to, if known.
        """
        super().__init__(
            f"Invalid feed settings: {reason}",
            details={"feed_id": feed_id, "reason": reason},
        )


class TierLimitExceededError(FeedError):
    """Raised when a shop's plan does not allow the requested feed."""

    def __init__(self, reason: str, tier: str) -> None:
        """Initialize tier limit error.

        Args:
            reason: Human-readable limit explanation.
            tier: Plan tier name.
        """
        super().__init__(reason, details={"tier": tier})


# ============================================================================
# Version Errors
# ============================================================================


class FeedVersionError(DomainError):
    """Base class for feed version errors."""

    pass


class FeedVersionNotFoundError(FeedVersionError):
    """Raised when a feed version does not exist or belongs to another feed."""

    def __init__(self, version_id: str, feed_id: str | None = None) -> None:
        """Initialize version not found error.

        Args:
            version_id: ID of the missing version.
            feed_id: Feed the version was expected to belong to.
        """
        super().__init__(
            f"Feed version not found: {version_id}",
            details={"version_id": version_id, "feed_id": feed_id},
        )


class VersionConflictError(FeedVersionError):
    """Raised when a version number is already taken for a feed."""

    def __init__(self, feed_id: str, version: int) -> None:
        """Initialize version conflict error.

        Args:
            feed_id: Feed ID.
            version: Conflicting version number.
        """
        super().__init__(
            f"Version {version} already exists for feed {feed_id}",
            details={"feed_id": feed_id, "version": version},
        )
