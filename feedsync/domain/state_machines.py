"""State machines for domain entities.

Deterministic state machines that define valid state transitions
for feeds and feed versions.
"""

from enum import Enum

from feedsync.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Feed State Machine
# ============================================================================


class FeedStatus(str, Enum):
    """Feed lifecycle states.

    The status doubles as the single-flight guard for generation runs:
    only an ACTIVE feed can be claimed, and claiming moves it to PROCESSING.

    State diagram:
        PAUSED ◄──── pause ──── ACTIVE ──── claim ────► PROCESSING
          │                      ▲  ▲                      │   │
          └─────── resume ───────┘  └── success / retry ───┘   │
                                 ▲                             │ retries
                                 │ reactivate                  │ exhausted
                                 │                             ▼
                                 └────────────────────────── FAILED
    """

    ACTIVE = "active"
    PROCESSING = "processing"
    PAUSED = "paused"
    FAILED = "failed"

    def can_transition_to(self, target: "FeedStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _FEED_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["FeedStatus"]:
        """Get list of valid target states.

        Returns:
            List of states that can be transitioned to.
        """
        return list(_FEED_TRANSITIONS.get(self, set()))

    def is_schedulable(self) -> bool:
        """Check if the scheduler may consider this feed at all.

        Returns:
            True only for ACTIVE feeds.
        """
        return self == FeedStatus.ACTIVE

    def requires_intervention(self) -> bool:
        """Check if an operator has to act before the feed runs again.

        Returns:
            True for FAILED feeds.
        """
        return self == FeedStatus.FAILED


# Feed state transitions (defined outside enum to avoid Enum restrictions)
_FEED_TRANSITIONS: dict[FeedStatus, set[FeedStatus]] = {
    FeedStatus.ACTIVE: {FeedStatus.PROCESSING, FeedStatus.PAUSED, FeedStatus.FAILED},
    FeedStatus.PROCESSING: {FeedStatus.ACTIVE, FeedStatus.FAILED},
    FeedStatus.PAUSED: {FeedStatus.ACTIVE},
    FeedStatus.FAILED: {FeedStatus.ACTIVE},  # Manual reactivation only
}


# ============================================================================
# Feed Version State Machine
# ============================================================================


class VersionStatus(str, Enum):
    """Feed version retention states.

    Archived versions stay readable for audit and rollback but are
    hidden from default listings. Archiving is one-way.
    """

    ACTIVE = "active"
    ARCHIVED = "archived"

    def can_transition_to(self, target: "VersionStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _VERSION_TRANSITIONS.get(self, set())


_VERSION_TRANSITIONS: dict[VersionStatus, set[VersionStatus]] = {
    VersionStatus.ACTIVE: {VersionStatus.ARCHIVED},
    VersionStatus.ARCHIVED: set(),  # Terminal state
}


# ============================================================================
# Transition Validators
# ============================================================================


def validate_feed_transition(
    feed_id: str,
    current: FeedStatus,
    target: FeedStatus,
) -> None:
    """Validate feed state transition.

    Args:
        feed_id: Feed ID for error messages.
        current: Current state.
        target: Target state.

    Raises:
        InvalidStateTransitionError: If transition is invalid.
    """
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(
            entity_type="Feed",
            entity_id=feed_id,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[s.value for s in current.allowed_transitions()],
        )
