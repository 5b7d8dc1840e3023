"""Completion tracking for todoq.

A task with children is as complete as the share of its direct children
whose status is completed (floored to an integer percentage); a leaf is 100%
when completed and 0% otherwise. Status changes walk upward through
parent_id links, recomputing each ancestor and promoting ancestors whose
children are all completed.

Walks are plain loops, never recursion, and every multi-step change runs in
one database transaction.
"""

import logging
from typing import TYPE_CHECKING, List, Optional

from todoq.core.errors import DependenciesNotMetError, TaskNotFoundError
from todoq.core.models import CompletionCheck, CompletionResult, Task, TaskProgress
from todoq.core.numbering import task_level
from todoq.core.state_machine import TaskStatus

if TYPE_CHECKING:
    from todoq.persistence.database import Database

logger = logging.getLogger(__name__)


def completion_percentage(total_children: int, completed_children: int, status: TaskStatus) -> int:
    """Percentage for a task given its children counts and own status."""
    if total_children == 0:
        return 100 if status == TaskStatus.COMPLETED else 0
    return (100 * completed_children) // total_children


class CompletionEngine:
    """Computes, caches and cascades completion state."""

    def __init__(self, database: "Database"):
        self.db = database

    @property
    def repo(self):
        return self.db.tasks

    def calculate_parent_completion(self, task_id: int) -> int:
        """Completion of a task from its direct children (0 when it has none)."""
        total, completed = self.repo.children_counts(task_id)
        if total == 0:
            return 0
        return (100 * completed) // total

    def refresh_task(self, task_id: int) -> int:
        """Recompute and persist one task's own percentage.

        Returns:
            The stored percentage
        """
        total, completed = self.repo.children_counts(task_id)
        status = self.repo.get_status(task_id)
        percentage = completion_percentage(total, completed, status)
        self.repo.set_completion_percentage(task_id, percentage)
        return percentage

    def refresh_ancestors(self, start_id: Optional[int]) -> None:
        """Refresh start_id and every ancestor above it, bottom-up."""
        with self.db.transaction():
            current_id = start_id
            while current_id is not None:
                self.refresh_task(current_id)
                current_id = self.repo.get_parent_id(current_id)

    def update_completion_tree(self, task_number: str) -> None:
        """Recompute the percentages of every ancestor of a task.

        Starts at the immediate parent and walks to the root. Each level only
        reads already-persisted child states, so repeated calls are stable.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task_id = self._require_id(task_number)
        self.refresh_ancestors(self.repo.get_parent_id(task_id))

    def auto_complete_parents(self, task_number: str) -> List[str]:
        """Promote ancestors whose children are all completed.

        The walk stops at the first ancestor with an unfinished child.

        Returns:
            Numbers of ancestors newly marked completed, child-to-root order

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task_id = self._require_id(task_number)
        auto_completed: List[str] = []

        with self.db.transaction():
            parent_id = self.repo.get_parent_id(task_id)
            while parent_id is not None:
                total, completed = self.repo.children_counts(parent_id)
                if completed < total:
                    break

                if self.repo.get_status(parent_id) != TaskStatus.COMPLETED:
                    parent_number = self.repo.get_number(parent_id)
                    auto_completed.append(parent_number)
                    logger.info(f"Auto-completed task {parent_number}: all subtasks completed")
                self.repo.mark_completed(parent_id)

                parent_id = self.repo.get_parent_id(parent_id)

        return auto_completed

    def cascade(self, task_number: str) -> List[str]:
        """Run the full upward cascade after a status change.

        Refreshes the task itself, its ancestors, promotes finished
        ancestors, then refreshes everything above the highest promotion.

        Returns:
            Numbers of auto-completed ancestors
        """
        task_id = self._require_id(task_number)
        with self.db.transaction():
            self.refresh_task(task_id)
            self.update_completion_tree(task_number)
            auto_completed = self.auto_complete_parents(task_number)
            if auto_completed:
                self.update_completion_tree(auto_completed[-1])
        return auto_completed

    def can_complete_task(self, task_number: str) -> CompletionCheck:
        """Check whether every dependency of a task is completed.

        Each blocker reads "<number> (<status>)". Unknown tasks are reported
        as blocked rather than raising.
        """
        task_id = self.repo.get_id(task_number)
        if task_id is None:
            return CompletionCheck(can_complete=False, blockers=["Task not found"])

        blockers = [
            f"{dep.task_number} ({dep.status.value})"
            for dep in self.repo.dependencies_of(task_id)
            if dep.status != TaskStatus.COMPLETED
        ]
        return CompletionCheck(can_complete=not blockers, blockers=blockers)

    def complete_task(self, task_number: str, notes: Optional[str] = None) -> CompletionResult:
        """Complete a task if its dependencies allow it.

        Raises:
            TaskNotFoundError: If the task does not exist
            DependenciesNotMetError: If any dependency is not completed;
                nothing is changed
        """
        task_id = self._require_id(task_number)

        with self.db.transaction():
            # Dependency check and status write share one write transaction
            check = self.can_complete_task(task_number)
            if not check.can_complete:
                raise DependenciesNotMetError(task_number, check.blockers)

            updates = {"status": TaskStatus.COMPLETED}
            if notes:
                updates["completion_notes"] = notes
            self.repo.update_fields(task_id, updates)
            auto_completed = self.cascade(task_number)

        logger.info(f"Completed task {task_number}")
        return CompletionResult(task=self.repo.get_by_id(task_id), auto_completed=auto_completed)

    def get_blocked_tasks(self, task_number: str) -> List[Task]:
        """Tasks waiting on the given task, regardless of their own state."""
        task_id = self.repo.get_id(task_number)
        if task_id is None:
            return []
        return self.repo.dependents_of(task_id)

    def get_progress_tree(self) -> List[TaskProgress]:
        """Every task with its children counts, live percentage and level."""
        progress = []
        for row in self.repo.progress_rows():
            status = TaskStatus(row["status"])
            progress.append(
                TaskProgress(
                    task_number=row["task_number"],
                    name=row["name"],
                    status=status,
                    parent_id=row["parent_id"],
                    total_children=row["total_children"],
                    completed_children=row["completed_children"],
                    completion_percentage=completion_percentage(
                        row["total_children"], row["completed_children"], status
                    ),
                    level=task_level(row["task_number"]),
                )
            )
        return progress

    def _require_id(self, task_number: str) -> int:
        task_id = self.repo.get_id(task_number)
        if task_id is None:
            raise TaskNotFoundError(task_number)
        return task_id
