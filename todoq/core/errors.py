"""Exception hierarchy for todoq.

Every error raised by the engine derives from TodoqError and carries a stable
``code`` plus a ``details`` dict so callers (CLI, automation) can react
without parsing messages.

This module is headless - no CLI or storage dependencies.
"""

from typing import Any, Optional


class TodoqError(Exception):
    """Base class for all todoq errors."""

    code = "TODOQ_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidNumberFormatError(TodoqError):
    """Raised when a task number does not match the dotted-decimal format."""

    code = "INVALID_NUMBER_FORMAT"

    def __init__(self, task_number: str):
        self.task_number = task_number
        super().__init__(
            f"Invalid task number '{task_number}': expected format like 1.0, 1.1, 1.2.1",
            {"task_number": task_number},
        )


class TaskValidationError(TodoqError):
    """Raised when task input fails schema validation.

    Attributes:
        issues: List of {"field", "error"} dicts describing each problem
    """

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, issues: Optional[list[dict[str, str]]] = None):
        self.issues = issues or []
        super().__init__(message, {"issues": self.issues})


class DuplicateNumberError(TodoqError):
    """Raised when a task number is already taken."""

    code = "DUPLICATE_NUMBER"

    def __init__(self, task_number: str):
        self.task_number = task_number
        super().__init__(
            f"Task with number {task_number} already exists",
            {"task_number": task_number},
        )


class InvalidHierarchyError(TodoqError):
    """Raised when a child number neither extends nor follows its parent."""

    code = "INVALID_HIERARCHY"

    def __init__(self, task_number: str, parent_number: str):
        self.task_number = task_number
        self.parent_number = parent_number
        super().__init__(
            f"Task number {task_number} is not a valid child of {parent_number}",
            {"task_number": task_number, "parent_number": parent_number},
        )


class ParentNotFoundError(TodoqError):
    """Raised when the declared parent task does not exist."""

    code = "PARENT_NOT_FOUND"

    def __init__(self, parent_number: str):
        self.parent_number = parent_number
        super().__init__(
            f"Parent task {parent_number} not found",
            {"parent_number": parent_number},
        )


class DependencyNotFoundError(TodoqError):
    """Raised when a declared dependency does not exist."""

    code = "DEPENDENCY_NOT_FOUND"

    def __init__(self, task_number: str, dependency_number: str):
        self.task_number = task_number
        self.dependency_number = dependency_number
        super().__init__(
            f"Dependency task {dependency_number} not found",
            {"task_number": task_number, "dependency_number": dependency_number},
        )


class CircularDependencyError(TodoqError):
    """Raised when a dependency edge closes a cycle."""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, task_number: str, depends_on: str):
        self.task_number = task_number
        self.depends_on = depends_on
        super().__init__(
            f"Circular dependency detected: {task_number} -> {depends_on}",
            {"task_number": task_number, "depends_on": depends_on},
        )


class TaskNotFoundError(TodoqError):
    """Raised when an operation targets a task number that does not exist."""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_number: str):
        self.task_number = task_number
        super().__init__(f"Task {task_number} not found", {"task_number": task_number})


class DependenciesNotMetError(TodoqError):
    """Raised when completing a task whose dependencies are still open."""

    code = "DEPENDENCIES_NOT_MET"

    def __init__(self, task_number: str, blockers: list[str]):
        self.task_number = task_number
        self.blockers = blockers
        super().__init__(
            f"Cannot complete task {task_number}. Blocked by: {', '.join(blockers)}",
            {"task_number": task_number, "blockers": blockers},
        )


class StorageError(TodoqError):
    """Raised when the underlying SQLite store fails.

    The original exception is chained as ``__cause__``.
    """

    code = "STORAGE_ERROR"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"Storage failure during {operation}: {reason}",
            {"operation": operation},
        )
