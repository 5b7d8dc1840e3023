"""Task management for todoq.

TaskService is the mutation entry point used by the CLI and other
collaborators: create, update, delete, list, complete, plus bulk import and
export of ``{"tasks": [...]}`` documents. Every multi-step mutation runs in a
single database transaction and leaves storage unchanged when it fails.

This module is headless - no CLI dependencies.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

from todoq.config import TodoqSettings, get_settings
from todoq.core.completion import CompletionEngine
from todoq.core.errors import (
    CircularDependencyError,
    DependencyNotFoundError,
    DuplicateNumberError,
    InvalidHierarchyError,
    ParentNotFoundError,
    TaskNotFoundError,
    TaskValidationError,
    TodoqError,
)
from todoq.core.models import (
    BulkInsertResult,
    CompletionResult,
    Task,
    TaskInput,
    TaskPatch,
    TaskStats,
    ValidationIssue,
    ValidationReport,
)
from todoq.core.navigation import NavigationService
from todoq.core.numbering import task_number_key
from todoq.core.state_machine import TaskStatus, parse_status
from todoq.core.validation import TaskValidator

if TYPE_CHECKING:
    from todoq.persistence.database import Database

logger = logging.getLogger(__name__)

ALREADY_EXISTS = "Already exists"


class TaskService:
    """Validated task mutations with completion cascades.

    Example:
        service = TaskService(db)
        service.create({"number": "1.0", "name": "Setup"})
        service.complete_task("1.0", notes="done")
    """

    def __init__(self, database: "Database", settings: Optional[TodoqSettings] = None):
        self.db = database
        self.settings = settings or get_settings()
        self.validator = TaskValidator()
        self.completion = CompletionEngine(database)
        self.navigation = NavigationService(database)

    @property
    def repo(self):
        return self.db.tasks

    # ------------------------------------------------------------------
    # Single-task operations
    # ------------------------------------------------------------------

    def create(self, data: Union[TaskInput, Dict[str, Any]]) -> Task:
        """Validate and persist one task.

        Args:
            data: TaskInput or a dict in import-document shape

        Returns:
            The persisted Task

        Raises:
            InvalidNumberFormatError: If the number is malformed
            TaskValidationError: For other schema problems
            DuplicateNumberError: If the number is taken
            ParentNotFoundError: If the parent does not exist
            InvalidHierarchyError: If the number does not fit under the parent
            DependencyNotFoundError: If a dependency does not exist
            CircularDependencyError: If the task depends on itself
        """
        task_input = self.validator.parse_input(data)

        with self.db.transaction():
            existing = self.repo.all_numbers()
            report = self.validator.validate_single(task_input, existing)
            if not report.valid:
                raise self._error_for(report.errors[0], task_input, existing)
            task_id = self._insert(task_input)

        logger.info(f"Created task {task_input.number}")
        return self.repo.get_by_id(task_id)

    def get(self, task_number: str) -> Optional[Task]:
        return self.repo.get_by_number(task_number)

    def get_by_id(self, task_id: int) -> Optional[Task]:
        return self.repo.get_by_id(task_id)

    def update(self, task_number: str, patch: Union[TaskPatch, Dict[str, Any]]) -> Task:
        """Apply a partial update.

        A status change recomputes the task's own percentage and cascades up
        the ancestor chain in the same transaction. No lifecycle guard is
        applied here; use state_machine.can_transition for that.

        Raises:
            TaskNotFoundError: If the task does not exist
            TaskValidationError: If the patch is invalid
        """
        patch = self.validator.parse_patch(patch)
        updates = patch.model_dump(exclude_unset=True)
        # Required columns cannot be cleared
        for key in ("name", "status", "priority"):
            if key in updates and updates[key] is None:
                del updates[key]

        with self.db.transaction():
            task = self._require(task_number)
            if not updates:
                return task
            status_changed = "status" in updates and updates["status"] != task.status
            self.repo.update_fields(task.id, updates)
            if status_changed:
                auto_completed = self.completion.cascade(task_number)
                if auto_completed:
                    logger.debug(f"Update of {task_number} auto-completed {auto_completed}")

        if status_changed:
            logger.info(f"Task {task_number}: {task.status.value} -> {updates['status'].value}")
        return self.repo.get_by_id(task.id)

    def start_task(self, task_number: str) -> Task:
        """Mark a task in progress."""
        return self.update(task_number, {"status": TaskStatus.IN_PROGRESS})

    def reopen_task(self, task_number: str) -> Task:
        """Move a task back to pending."""
        return self.update(task_number, {"status": TaskStatus.PENDING})

    def complete_task(self, task_number: str, notes: Optional[str] = None) -> CompletionResult:
        """Complete a task unless its dependencies block it.

        Raises:
            TaskNotFoundError: If the task does not exist
            DependenciesNotMetError: If any dependency is not completed
        """
        return self.completion.complete_task(task_number, notes)

    def delete(self, task_number: str) -> int:
        """Delete a task with all of its descendants.

        Dependency edges touching any removed task go with it, and the
        former parent's chain is recomputed.

        Returns:
            Number of tasks removed

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task_id = self._require_id(task_number)

        with self.db.transaction():
            parent_id = self.repo.get_parent_id(task_id)
            count = self.repo.count_subtree(task_id)
            self.repo.delete(task_id)
            if parent_id is not None:
                self.completion.refresh_ancestors(parent_id)

        logger.info(f"Deleted task {task_number} ({count} tasks removed)")
        return count

    def delete_all(self) -> int:
        """Remove every task and dependency edge.

        Returns:
            Number of tasks removed
        """
        with self.db.transaction():
            count = self.repo.delete_all()
        logger.info(f"Cleared {count} tasks")
        return count

    def list_tasks(
        self,
        status: Optional[Union[TaskStatus, str]] = None,
        parent: Optional[str] = None,
        no_subtasks: bool = False,
        include_completed: bool = True,
    ) -> List[Task]:
        """List tasks in numeric order.

        Args:
            status: Only tasks with this status
            parent: Only direct children of this task number
            no_subtasks: Only top-level tasks
            include_completed: Keep completed tasks (default True)

        Raises:
            TaskNotFoundError: If parent does not exist
        """
        if isinstance(status, str) and not isinstance(status, TaskStatus):
            status = parse_status(status)
        parent_id = self._require_id(parent) if parent is not None else None
        return self.repo.list_tasks(
            status=status,
            parent_id=parent_id,
            root_only=no_subtasks and parent_id is None,
            exclude_completed=not include_completed,
        )

    def get_stats(self) -> TaskStats:
        """Counts per status and the share of completed tasks."""
        counts = self.repo.count_by_status()
        total = sum(counts.values())
        completed = counts.get(TaskStatus.COMPLETED.value, 0)
        return TaskStats(
            total=total,
            pending=counts.get(TaskStatus.PENDING.value, 0),
            in_progress=counts.get(TaskStatus.IN_PROGRESS.value, 0),
            completed=completed,
            cancelled=counts.get(TaskStatus.CANCELLED.value, 0),
            completion_rate=round(100 * completed / total) if total else 0,
        )

    # ------------------------------------------------------------------
    # Bulk import / export
    # ------------------------------------------------------------------

    def bulk_insert(self, inputs: Sequence[Any], skip_errors: bool = False) -> BulkInsertResult:
        """Validate a batch, then persist it.

        Nothing is written when validation fails unless ``skip_errors`` is
        set, in which case invalid tasks (and tasks that become invalid
        without them) are dropped and reported. Numbers that already exist
        are skipped. Rows are inserted in numeric order, which always puts a
        parent before its children; dependency edges are added once every
        row exists.

        Returns:
            BulkInsertResult with inserted tasks, skips, errors and counts
        """
        total = len(inputs)
        existing = self.repo.all_numbers()
        remaining = list(inputs)
        report = self.validator.validate_import(remaining, existing)
        rejected: List[ValidationIssue] = []

        if not report.valid and not skip_errors:
            logger.warning(f"Import rejected: {report.summary['invalid']} of {total} tasks invalid")
            return BulkInsertResult(
                success=False,
                errors=[issue.to_dict() for issue in report.errors],
                summary={"total": total, "successful": 0, "skipped": 0, "failed": report.summary["invalid"]},
            )

        while not report.valid:
            rejected.extend(report.errors)
            bad = set(report.invalid_positions)
            remaining = [raw for position, raw in enumerate(remaining) if position not in bad]
            report = self.validator.validate_import(remaining, existing)

        ordered = sorted(
            (self.validator.parse_input(raw) for raw in remaining),
            key=lambda task: task_number_key(task.number),
        )

        result = BulkInsertResult(errors=[issue.to_dict() for issue in rejected])
        created: List[tuple] = []

        with self.db.transaction():
            for task_input in ordered:
                if self.repo.get_id(task_input.number) is not None:
                    result.skipped.append({"task": task_input.number, "reason": ALREADY_EXISTS})
                    continue
                try:
                    with self.db.transaction():
                        task_id = self._insert(task_input, with_dependencies=False)
                except TodoqError as e:
                    logger.warning(f"Failed to import task {task_input.number}: {e}")
                    result.errors.append({"task": task_input.number, "field": "", "error": e.message})
                    continue
                created.append((task_id, task_input))

            for task_id, task_input in created:
                try:
                    with self.db.transaction():
                        self._add_dependencies(task_id, task_input)
                except TodoqError as e:
                    logger.warning(f"Failed to link dependencies of {task_input.number}: {e}")
                    result.errors.append(
                        {"task": task_input.number, "field": "dependencies", "error": e.message}
                    )

        result.inserted = [self.repo.get_by_id(task_id) for task_id, _ in created]
        failed = total - len(result.inserted) - len(result.skipped)
        result.success = not result.errors
        result.summary = {
            "total": total,
            "successful": len(result.inserted),
            "skipped": len(result.skipped),
            "failed": failed,
        }
        logger.info(
            f"Imported {len(result.inserted)} tasks "
            f"({len(result.skipped)} skipped, {failed} failed)"
        )
        return result

    def import_document(self, data: Any, skip_errors: bool = False) -> BulkInsertResult:
        """Import a ``{"tasks": [...]}`` document.

        Raises:
            TaskValidationError: If the document has no tasks list
        """
        return self.bulk_insert(self._document_tasks(data), skip_errors=skip_errors)

    def validate_document(self, data: Any) -> ValidationReport:
        """Validate a document against the current store without writing."""
        return self.validator.validate_import(self._document_tasks(data), self.repo.all_numbers())

    def export_document(self, status: Optional[Union[TaskStatus, str]] = None) -> Dict[str, Any]:
        """Export tasks as an import document, numeric order."""
        tasks = self.list_tasks(status=status)
        numbers_by_id = {task.id: task.task_number for task in tasks}

        exported = []
        for task in tasks:
            parent = None
            if task.parent_id is not None:
                parent = numbers_by_id.get(task.parent_id) or self.repo.get_number(task.parent_id)
            exported.append(
                {
                    "number": task.task_number,
                    "name": task.name,
                    "description": task.description,
                    "parent": parent,
                    "status": task.status.value,
                    "priority": task.priority,
                    "docs_references": list(task.docs_references),
                    "testing_strategy": task.testing_strategy,
                    "dependencies": list(task.dependencies),
                    "files": list(task.files),
                    "notes": task.notes,
                    "completion_notes": task.completion_notes,
                }
            )
        return {"tasks": exported}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert(self, task_input: TaskInput, with_dependencies: bool = True) -> int:
        parent_id = None
        if task_input.parent:
            parent_id = self.repo.get_id(task_input.parent)
            if parent_id is None:
                raise ParentNotFoundError(task_input.parent)

        status = task_input.status or self.settings.default_status
        priority = task_input.priority if task_input.priority is not None else self.settings.default_priority

        task_id = self.repo.insert_task(
            task_number=task_input.number,
            name=task_input.name,
            parent_id=parent_id,
            description=task_input.description,
            docs_references=task_input.docs_references,
            testing_strategy=task_input.testing_strategy,
            status=status,
            priority=priority,
            files=task_input.files,
            notes=task_input.notes,
            completion_notes=task_input.completion_notes,
            completion_percentage=100 if status == TaskStatus.COMPLETED else 0,
        )
        if with_dependencies:
            self._add_dependencies(task_id, task_input)

        self.completion.refresh_ancestors(task_id)
        return task_id

    def _add_dependencies(self, task_id: int, task_input: TaskInput) -> None:
        for dep in task_input.dependencies or []:
            dep_id = self.repo.get_id(dep)
            if dep_id is None:
                raise DependencyNotFoundError(task_input.number, dep)
            self.repo.add_dependency(task_id, dep_id)

    def _error_for(self, issue: ValidationIssue, task_input: TaskInput, existing: set) -> TodoqError:
        number = task_input.number
        if issue.code == DuplicateNumberError.code:
            return DuplicateNumberError(number)
        if issue.code == ParentNotFoundError.code:
            return ParentNotFoundError(task_input.parent)
        if issue.code == InvalidHierarchyError.code:
            return InvalidHierarchyError(number, task_input.parent)
        if issue.code == DependencyNotFoundError.code:
            missing = [
                dep for dep in task_input.dependencies or [] if dep != number and dep not in existing
            ]
            return DependencyNotFoundError(number, missing[0])
        if issue.code == CircularDependencyError.code:
            return CircularDependencyError(number, number)
        return TaskValidationError(issue.error, [issue.to_dict()])

    @staticmethod
    def _document_tasks(data: Any) -> List[Any]:
        if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
            raise TaskValidationError(
                "Import document must be an object with a 'tasks' list",
                [{"field": "tasks", "error": "Expected a list of tasks"}],
            )
        return data["tasks"]

    def _require(self, task_number: str) -> Task:
        task = self.repo.get_by_number(task_number)
        if task is None:
            raise TaskNotFoundError(task_number)
        return task

    def _require_id(self, task_number: str) -> int:
        task_id = self.repo.get_id(task_number)
        if task_id is None:
            raise TaskNotFoundError(task_number)
        return task_id
