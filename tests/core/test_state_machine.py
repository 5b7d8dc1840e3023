"""Unit tests for todoq/core/state_machine.py."""

import pytest

from todoq.core.state_machine import (
    ALLOWED_TRANSITIONS,
    OPEN_STATUSES,
    InvalidTransitionError,
    TaskStatus,
    can_transition,
    parse_status,
    validate_transition,
)


class TestTaskStatus:
    """Tests for TaskStatus enum."""

    def test_all_statuses_exist(self):
        expected = {"pending", "in_progress", "completed", "cancelled"}
        assert {s.value for s in TaskStatus} == expected

    def test_status_is_string(self):
        """TaskStatus should serialize as string."""
        assert TaskStatus.PENDING == "pending"
        assert TaskStatus.IN_PROGRESS.value == "in_progress"

    def test_open_statuses(self):
        assert OPEN_STATUSES == {TaskStatus.PENDING, TaskStatus.IN_PROGRESS}
        assert TaskStatus.PENDING.is_open is True
        assert TaskStatus.COMPLETED.is_open is False


class TestCanTransition:
    """Tests for the normal lifecycle."""

    def test_pending_to_in_progress(self):
        assert can_transition(TaskStatus.PENDING, TaskStatus.IN_PROGRESS) is True

    def test_in_progress_to_completed(self):
        assert can_transition(TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED) is True

    def test_open_statuses_can_be_cancelled(self):
        assert can_transition(TaskStatus.PENDING, TaskStatus.CANCELLED) is True
        assert can_transition(TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED) is True

    def test_reopen(self):
        """Closed tasks can go back to pending."""
        assert can_transition(TaskStatus.COMPLETED, TaskStatus.PENDING) is True
        assert can_transition(TaskStatus.CANCELLED, TaskStatus.PENDING) is True

    def test_completed_to_in_progress_not_allowed(self):
        assert can_transition(TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS) is False

    def test_same_status_allowed(self):
        for status in TaskStatus:
            assert can_transition(status, status) is True

    def test_every_status_has_transitions(self):
        assert set(ALLOWED_TRANSITIONS) == set(TaskStatus)


class TestValidateTransition:
    """Tests for validate_transition function."""

    def test_valid_transition_passes(self):
        validate_transition(TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

    def test_invalid_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(TaskStatus.CANCELLED, TaskStatus.COMPLETED)

        assert exc_info.value.current == TaskStatus.CANCELLED
        assert exc_info.value.target == TaskStatus.COMPLETED
        assert "Allowed transitions from cancelled: pending" in str(exc_info.value)


class TestParseStatus:
    """Tests for parse_status function."""

    def test_lowercase(self):
        assert parse_status("completed") == TaskStatus.COMPLETED

    def test_uppercase(self):
        assert parse_status("IN_PROGRESS") == TaskStatus.IN_PROGRESS

    def test_dashes(self):
        assert parse_status("in-progress") == TaskStatus.IN_PROGRESS

    def test_invalid_raises(self):
        with pytest.raises(ValueError, match="Invalid status 'done'"):
            parse_status("done")
