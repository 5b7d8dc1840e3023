"""Validation of task input before anything is persisted.

The validator checks each task against the TaskInput schema, finds duplicate
numbers, checks parent/child numbering and dependency references, and runs a
cycle check over the batch's dependency graph. Problems are collected into a
ValidationReport; nothing here raises for invalid data except parse_input,
which callers use for single-task requests.

This module is headless - no CLI or storage dependencies.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from todoq.core.errors import (
    CircularDependencyError,
    DependencyNotFoundError,
    DuplicateNumberError,
    InvalidHierarchyError,
    InvalidNumberFormatError,
    ParentNotFoundError,
    TaskValidationError,
)
from todoq.core.models import TaskInput, TaskPatch, ValidationIssue, ValidationReport
from todoq.core.numbering import is_valid_hierarchy

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2


def find_back_edges(graph: Dict[str, List[str]]) -> List[Tuple[str, str]]:
    """Find every dependency edge that closes a cycle.

    Nodes are mapped to indices and explored with an explicit stack, so
    deep chains cannot exhaust the interpreter's recursion limit. Edges to
    nodes outside the graph are ignored.

    Args:
        graph: task number -> numbers it depends on

    Returns:
        (task, depends_on) pairs whose target was on the DFS stack
    """
    nodes = list(graph)
    index = {number: i for i, number in enumerate(nodes)}
    edges: List[List[int]] = []
    for number in nodes:
        targets: List[int] = []
        for dep in graph[number]:
            target = index.get(dep)
            if target is not None and target not in targets:
                targets.append(target)
        edges.append(targets)

    color = [WHITE] * len(nodes)
    back_edges: List[Tuple[str, str]] = []

    for start in range(len(nodes)):
        if color[start] != WHITE:
            continue
        color[start] = GRAY
        stack = [(start, 0)]
        while stack:
            node, edge_index = stack[-1]
            if edge_index < len(edges[node]):
                stack[-1] = (node, edge_index + 1)
                target = edges[node][edge_index]
                if color[target] == WHITE:
                    color[target] = GRAY
                    stack.append((target, 0))
                elif color[target] == GRAY:
                    back_edges.append((nodes[node], nodes[target]))
            else:
                color[node] = BLACK
                stack.pop()

    return back_edges


def _clean_message(message: str) -> str:
    # pydantic prefixes messages raised from validators
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


def _issues_from_error(error: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "error": _clean_message(err["msg"]),
        }
        for err in error.errors()
    ]


class TaskValidator:
    """Validates single tasks and import batches."""

    def parse_input(self, raw: Any) -> TaskInput:
        """Validate one task against the schema.

        Raises:
            InvalidNumberFormatError: If the task number is malformed
            TaskValidationError: For any other schema problem
        """
        if isinstance(raw, TaskInput):
            return raw
        try:
            return TaskInput.model_validate(raw)
        except ValidationError as e:
            issues = _issues_from_error(e)
            if any(issue["field"] == "number" for issue in issues) and isinstance(raw, dict):
                raise InvalidNumberFormatError(str(raw.get("number"))) from e
            summary = ", ".join(f"{i['field']}: {i['error']}" for i in issues)
            raise TaskValidationError(f"Invalid task data: {summary}", issues) from e

    def parse_patch(self, raw: Any) -> TaskPatch:
        """Validate a partial update.

        Raises:
            TaskValidationError: If a field is unknown or out of bounds
        """
        if isinstance(raw, TaskPatch):
            return raw
        try:
            return TaskPatch.model_validate(raw)
        except ValidationError as e:
            issues = _issues_from_error(e)
            summary = ", ".join(f"{i['field']}: {i['error']}" for i in issues)
            raise TaskValidationError(f"Invalid task update: {summary}", issues) from e

    def validate_import(
        self,
        tasks: Sequence[Any],
        existing_numbers: Optional[Iterable[str]] = None,
    ) -> ValidationReport:
        """Validate a batch of tasks.

        Args:
            tasks: Raw task dicts (or TaskInput objects)
            existing_numbers: Numbers already persisted; parents and
                dependencies may point at them

        Returns:
            ValidationReport covering the whole batch
        """
        existing = set(existing_numbers or ())
        issues: List[ValidationIssue] = []
        invalid_indices: set = set()
        accepted: List[Tuple[int, TaskInput]] = []
        seen_numbers: set = set()

        # First pass: schema and duplicates
        for position, raw in enumerate(tasks):
            label = self._label(raw)
            try:
                task = TaskInput.model_validate(raw.model_dump() if isinstance(raw, TaskInput) else raw)
            except ValidationError as e:
                for issue in _issues_from_error(e):
                    code = (
                        InvalidNumberFormatError.code
                        if issue["field"] == "number"
                        else TaskValidationError.code
                    )
                    issues.append(ValidationIssue(label, issue["field"], issue["error"], code))
                invalid_indices.add(position)
                continue

            if task.number in seen_numbers:
                issues.append(
                    ValidationIssue(
                        task.number, "number", "Duplicate task number", DuplicateNumberError.code
                    )
                )
                invalid_indices.add(position)
                continue

            seen_numbers.add(task.number)
            accepted.append((position, task))

        # Second pass: relationships
        known = seen_numbers | existing
        for position, task in accepted:
            found = self._relationship_issues(task, known)
            if found:
                issues.extend(found)
                invalid_indices.add(position)

        # Third pass: cycles among the batch
        graph = {task.number: list(task.dependencies or []) for _, task in accepted}
        position_of = {task.number: position for position, task in accepted}
        for task_number, depends_on in find_back_edges(graph):
            issues.append(
                ValidationIssue(
                    task_number,
                    "dependencies",
                    f"Circular dependency detected: {task_number} -> {depends_on}",
                    CircularDependencyError.code,
                )
            )
            invalid_indices.add(position_of[task_number])

        report = ValidationReport(
            valid=not issues,
            errors=issues,
            summary={
                "total": len(tasks),
                "valid": len(tasks) - len(invalid_indices),
                "invalid": len(invalid_indices),
            },
            invalid_positions=sorted(invalid_indices),
        )
        if not report.valid:
            logger.debug(f"Validation found {len(issues)} issues in {len(tasks)} tasks")
        return report

    def validate_single(self, task: TaskInput, existing_numbers: Iterable[str]) -> ValidationReport:
        """Validate one already-parsed task against persisted numbers."""
        existing = set(existing_numbers)
        issues: List[ValidationIssue] = []
        if task.number in existing:
            issues.append(
                ValidationIssue(
                    task.number,
                    "number",
                    f"Task with number {task.number} already exists",
                    DuplicateNumberError.code,
                )
            )
        issues.extend(self._relationship_issues(task, existing))
        if task.number in (task.dependencies or []):
            issues.append(
                ValidationIssue(
                    task.number,
                    "dependencies",
                    f"Circular dependency detected: {task.number} -> {task.number}",
                    CircularDependencyError.code,
                )
            )
        return ValidationReport(
            valid=not issues,
            errors=issues,
            summary={"total": 1, "valid": 0 if issues else 1, "invalid": 1 if issues else 0},
            invalid_positions=[0] if issues else [],
        )

    def _relationship_issues(self, task: TaskInput, known: set) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        if task.parent:
            if task.parent not in known:
                issues.append(
                    ValidationIssue(
                        task.number,
                        "parent",
                        f"Parent task {task.parent} not found",
                        ParentNotFoundError.code,
                    )
                )
            if not is_valid_hierarchy(task.number, task.parent):
                issues.append(
                    ValidationIssue(
                        task.number,
                        "number",
                        f"Task number {task.number} must extend or follow parent {task.parent}",
                        InvalidHierarchyError.code,
                    )
                )

        for dep in task.dependencies or []:
            # Self-references are reported by the cycle check
            if dep != task.number and dep not in known:
                issues.append(
                    ValidationIssue(
                        task.number,
                        "dependencies",
                        f"Dependency {dep} not found",
                        DependencyNotFoundError.code,
                    )
                )

        return issues

    @staticmethod
    def _label(raw: Any) -> str:
        if isinstance(raw, TaskInput):
            return raw.number
        if isinstance(raw, dict) and isinstance(raw.get("number"), str):
            return raw["number"]
        return "unknown"
