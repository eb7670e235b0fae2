"""Tests for domain state machines."""

import pytest

from feedsync.domain.exceptions import InvalidStateTransitionError
from feedsync.domain.state_machines import (
    FeedStatus,
    VersionStatus,
    validate_feed_transition,
)


class TestFeedStatus:
    """Tests for FeedStatus state machine."""

    def test_active_can_be_claimed(self) -> None:
        """ACTIVE can transition to PROCESSING."""
        assert FeedStatus.ACTIVE.can_transition_to(FeedStatus.PROCESSING)

    def test_active_can_be_paused(self) -> None:
        """ACTIVE can transition to PAUSED."""
        assert FeedStatus.ACTIVE.can_transition_to(FeedStatus.PAUSED)

    def test_processing_returns_to_active_or_fails(self) -> None:
        """PROCESSING can transition to ACTIVE or FAILED."""
        assert FeedStatus.PROCESSING.can_transition_to(FeedStatus.ACTIVE)
        assert FeedStatus.PROCESSING.can_transition_to(FeedStatus.FAILED)

    def test_processing_cannot_be_paused(self) -> None:
        """A running feed cannot be paused mid-run."""
        assert not FeedStatus.PROCESSING.can_transition_to(FeedStatus.PAUSED)

    def test_paused_only_resumes(self) -> None:
        """PAUSED can only go back to ACTIVE."""
        assert FeedStatus.PAUSED.allowed_transitions() == [FeedStatus.ACTIVE]
        assert not FeedStatus.PAUSED.can_transition_to(FeedStatus.PROCESSING)

    def test_failed_requires_reactivation(self) -> None:
        """FAILED only leaves through reactivation to ACTIVE."""
        assert FeedStatus.FAILED.allowed_transitions() == [FeedStatus.ACTIVE]
        assert FeedStatus.FAILED.requires_intervention()
        assert not FeedStatus.FAILED.can_transition_to(FeedStatus.PROCESSING)

    def test_only_active_is_schedulable(self) -> None:
        """Only ACTIVE feeds are considered by the scheduler."""
        assert FeedStatus.ACTIVE.is_schedulable()
        assert not FeedStatus.PROCESSING.is_schedulable()
        assert not FeedStatus.PAUSED.is_schedulable()
        assert not FeedStatus.FAILED.is_schedulable()


class TestVersionStatus:
    """Tests for VersionStatus state machine."""

    def test_active_can_be_archived(self) -> None:
        """ACTIVE versions can be archived."""
        assert VersionStatus.ACTIVE.can_transition_to(VersionStatus.ARCHIVED)

    def test_archived_is_terminal(self) -> None:
        """Archiving is one-way."""
        assert not VersionStatus.ARCHIVED.can_transition_to(VersionStatus.ACTIVE)


class TestTransitionValidators:
    """Tests for transition validator functions."""

    def test_valid_feed_transition(self) -> None:
        """Valid transition should not raise."""
        validate_feed_transition("feed-1", FeedStatus.ACTIVE, FeedStatus.PROCESSING)

    def test_invalid_feed_transition_raises(self) -> None:
        """Invalid transition should raise with context details."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_feed_transition("feed-1", FeedStatus.PAUSED, FeedStatus.PROCESSING)

        error = exc_info.value
        assert error.details["entity_type"] == "Feed"
        assert error.details["entity_id"] == "feed-1"
        assert error.details["current_state"] == "paused"
        assert error.details["target_state"] == "processing"
        assert error.details["allowed_transitions"] == ["active"]
