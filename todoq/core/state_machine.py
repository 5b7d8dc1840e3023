"""Task status model for todoq.

Statuses:
- PENDING: Task not started yet
- IN_PROGRESS: Task is actively being worked on
- COMPLETED: Task finished
- CANCELLED: Task abandoned

The engine accepts any status change. ALLOWED_TRANSITIONS describes the
normal lifecycle so that callers (the CLI) can guard moves outside it.

This module is headless - no CLI or storage dependencies.
"""

from enum import Enum
from typing import Set


class TaskStatus(str, Enum):
    """Task status.

    Uses str mixin for easy JSON serialization and SQLite storage.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        """Whether the task still needs work."""
        return self in OPEN_STATUSES


OPEN_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})

# Normal lifecycle (from -> set of allowed targets)
ALLOWED_TRANSITIONS: dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: {TaskStatus.PENDING},
    TaskStatus.CANCELLED: {TaskStatus.PENDING},
}


class InvalidTransitionError(Exception):
    """Raised by callers that enforce the normal lifecycle."""

    def __init__(self, current: TaskStatus, target: TaskStatus):
        self.current = current
        self.target = target
        allowed = ALLOWED_TRANSITIONS.get(current, set())
        allowed_str = ", ".join(sorted(s.value for s in allowed)) if allowed else "none"
        super().__init__(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Allowed transitions from {current.value}: {allowed_str}"
        )


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Check if a status change follows the normal lifecycle.

    Staying in the same status is always allowed.
    """
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())


def validate_transition(current: TaskStatus, target: TaskStatus) -> None:
    """Raise InvalidTransitionError if the change leaves the normal lifecycle."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def parse_status(value: str) -> TaskStatus:
    """Parse a string into a TaskStatus.

    Accepts both uppercase and lowercase input, and dashes for underscores.

    Args:
        value: Status string (e.g., "pending", "IN_PROGRESS", "in-progress")

    Returns:
        TaskStatus enum value

    Raises:
        ValueError: If the string doesn't match any status
    """
    normalized = value.strip().lower().replace("-", "_")
    try:
        return TaskStatus(normalized)
    except ValueError:
        valid = ", ".join(s.value for s in TaskStatus)
        raise ValueError(f"Invalid status '{value}'. Valid statuses: {valid}")
