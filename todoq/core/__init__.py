"""Task hierarchy and completion engine for todoq."""

from todoq.core.errors import TodoqError
from todoq.core.models import Task, TaskInput, TaskPatch
from todoq.core.state_machine import TaskStatus

__all__ = ["TodoqError", "Task", "TaskInput", "TaskPatch", "TaskStatus"]
