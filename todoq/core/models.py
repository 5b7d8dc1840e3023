"""Core data models for todoq."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AfterValidator,
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from todoq.core.numbering import is_valid_task_number
from todoq.core.state_machine import TaskStatus

TASK_NUMBER_MESSAGE = "Task number must follow format like 1.0, 1.1, 1.2.1"

_URL_ADAPTER = TypeAdapter(AnyUrl)


def _check_task_number(value: str) -> str:
    if not is_valid_task_number(value):
        raise ValueError(TASK_NUMBER_MESSAGE)
    return value


def _check_url(value: str) -> str:
    # Validate only; the caller's spelling of the URL is stored unchanged
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError:
        raise ValueError("Invalid URL format")
    return value


TaskNumberStr = Annotated[str, AfterValidator(_check_task_number)]
UrlStr = Annotated[str, AfterValidator(_check_url)]


@dataclass
class Task:
    """A persisted task.

    ``task_number`` defines both display order and hierarchy depth.
    ``completion_percentage`` is derived by the completion engine.
    ``dependencies`` holds the numbers of the tasks this one waits on.
    """

    id: int
    task_number: str
    name: str
    status: TaskStatus = TaskStatus.PENDING
    priority: int = 0
    parent_id: Optional[int] = None
    description: Optional[str] = None
    docs_references: List[str] = field(default_factory=list)
    testing_strategy: Optional[str] = None
    files: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    completion_notes: Optional[str] = None
    completion_percentage: int = 0
    dependencies: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def level(self) -> int:
        """Hierarchy depth derived from the task number."""
        return self.task_number.count(".")

    def to_dict(self) -> Dict[str, Any]:
        """Convert Task to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "task_number": self.task_number,
            "name": self.name,
            "description": self.description,
            "docs_references": list(self.docs_references),
            "testing_strategy": self.testing_strategy,
            "status": self.status.value,
            "priority": self.priority,
            "files": list(self.files),
            "notes": self.notes,
            "completion_notes": self.completion_notes,
            "completion_percentage": self.completion_percentage,
            "dependencies": list(self.dependencies),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TaskInput(BaseModel):
    """Task as it appears in an import document or a create request."""

    model_config = ConfigDict(extra="ignore")

    number: TaskNumberStr
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    parent: Optional[TaskNumberStr] = None
    status: Optional[TaskStatus] = None
    priority: Optional[int] = Field(None, ge=0, le=10)
    docs_references: Optional[List[UrlStr]] = None
    testing_strategy: Optional[str] = None
    dependencies: Optional[List[TaskNumberStr]] = None
    files: Optional[List[str]] = None
    notes: Optional[str] = None
    completion_notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name_not_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        if not v.strip():
            raise ValueError("Task name is required")
        return v


class TaskPatch(BaseModel):
    """Partial update of a task's editable fields."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[int] = Field(None, ge=0, le=10)
    docs_references: Optional[List[UrlStr]] = None
    testing_strategy: Optional[str] = None
    files: Optional[List[str]] = None
    notes: Optional[str] = None
    completion_notes: Optional[str] = None


@dataclass
class TaskProgress:
    """Progress annotation of one task for the progress tree."""

    task_number: str
    name: str
    status: TaskStatus
    parent_id: Optional[int]
    total_children: int
    completed_children: int
    completion_percentage: int
    level: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_number": self.task_number,
            "name": self.name,
            "status": self.status.value,
            "parent_id": self.parent_id,
            "total_children": self.total_children,
            "completed_children": self.completed_children,
            "completion_percentage": self.completion_percentage,
            "level": self.level,
        }


@dataclass
class TaskHierarchyNode:
    """A task with its nested children."""

    task: Task
    level: int
    children: List["TaskHierarchyNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task.to_dict(),
            "level": self.level,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class CompletionCheck:
    """Answer to "can this task be completed"."""

    can_complete: bool
    blockers: List[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    """Outcome of completing a task."""

    task: Task
    auto_completed: List[str] = field(default_factory=list)


@dataclass
class ValidationIssue:
    """One problem found while validating a task.

    ``code`` matches the ``code`` of the TodoqError subclass describing the
    problem; it is not part of the serialized report.
    """

    task: str
    field: str
    error: str
    code: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"task": self.task, "field": self.field, "error": self.error}


@dataclass
class ValidationReport:
    """Structured result of validating a batch of tasks.

    Attributes:
        valid: True when no issue was found
        errors: Every issue, in discovery order
        summary: Counts of total, valid and invalid tasks
        invalid_positions: Batch indices of the invalid tasks (not serialized)
    """

    valid: bool
    errors: List[ValidationIssue] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    invalid_positions: List[int] = field(default_factory=list)

    def errors_for(self, task_number: str) -> List[ValidationIssue]:
        """Issues reported against one task."""
        return [issue for issue in self.errors if issue.task == task_number]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "summary": dict(self.summary),
        }


@dataclass
class BulkInsertResult:
    """Outcome of a bulk import."""

    success: bool = False
    inserted: List[Task] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "inserted": [task.to_dict() for task in self.inserted],
            "skipped": list(self.skipped),
            "errors": list(self.errors),
            "summary": dict(self.summary),
        }


@dataclass
class TaskStats:
    """Counts of tasks per status."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    completion_rate: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "completion_rate": self.completion_rate,
        }
