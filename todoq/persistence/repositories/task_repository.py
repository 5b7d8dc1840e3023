"""Repository for task and task-dependency rows.

All ordering goes through the TASK_NUMBER collation so that "2.0" sorts
before "10.0" inside SQL.
"""

import sqlite3
from typing import Any, Dict, Iterable, List, Optional
import logging

from todoq.core.models import Task
from todoq.core.state_machine import TaskStatus
from todoq.persistence.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

NUMERIC_ORDER = "ORDER BY task_number COLLATE TASK_NUMBER"

# Whitelist of allowed task fields for updates (prevents SQL injection)
ALLOWED_TASK_FIELDS = {
    "name",
    "description",
    "docs_references",
    "testing_strategy",
    "status",
    "priority",
    "files",
    "notes",
    "completion_notes",
    "completion_percentage",
}

LIST_FIELDS = {"docs_references", "files"}


class TaskRepository(BaseRepository):
    """Repository for task operations."""

    def insert_task(
        self,
        task_number: str,
        name: str,
        parent_id: Optional[int] = None,
        description: Optional[str] = None,
        docs_references: Optional[List[str]] = None,
        testing_strategy: Optional[str] = None,
        status: TaskStatus = TaskStatus.PENDING,
        priority: int = 0,
        files: Optional[List[str]] = None,
        notes: Optional[str] = None,
        completion_notes: Optional[str] = None,
        completion_percentage: int = 0,
    ) -> int:
        """Insert a task row.

        Returns:
            New task ID
        """
        cursor = self._execute(
            """
            INSERT INTO tasks (
                parent_id, task_number, name, description, docs_references,
                testing_strategy, status, priority, files, notes, completion_notes,
                completion_percentage
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                parent_id,
                task_number,
                name,
                description,
                self._dump_list(docs_references),
                testing_strategy,
                TaskStatus(status).value,
                priority,
                self._dump_list(files),
                notes,
                completion_notes,
                completion_percentage,
            ),
        )
        return cursor.lastrowid

    def add_dependency(self, task_id: int, depends_on_id: int) -> None:
        """Record that task_id waits on depends_on_id (duplicates are ignored)."""
        self._execute(
            "INSERT OR IGNORE INTO task_dependencies (task_id, depends_on_id) VALUES (?, ?)",
            (task_id, depends_on_id),
        )

    def get_by_id(self, task_id: int) -> Optional[Task]:
        """Get task by ID, or None if not found."""
        row = self._fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    def get_by_number(self, task_number: str) -> Optional[Task]:
        """Get task by task number, or None if not found."""
        row = self._fetchone("SELECT * FROM tasks WHERE task_number = ?", (task_number,))
        return self._row_to_task(row) if row else None

    def get_id(self, task_number: str) -> Optional[int]:
        """Resolve a task number to its ID."""
        row = self._fetchone("SELECT id FROM tasks WHERE task_number = ?", (task_number,))
        return row["id"] if row else None

    def get_number(self, task_id: int) -> Optional[str]:
        """Resolve a task ID to its number."""
        row = self._fetchone("SELECT task_number FROM tasks WHERE id = ?", (task_id,))
        return row["task_number"] if row else None

    def get_parent_id(self, task_id: int) -> Optional[int]:
        """Parent ID of a task (None for roots and unknown tasks)."""
        row = self._fetchone("SELECT parent_id FROM tasks WHERE id = ?", (task_id,))
        return row["parent_id"] if row else None

    def get_status(self, task_id: int) -> Optional[TaskStatus]:
        row = self._fetchone("SELECT status FROM tasks WHERE id = ?", (task_id,))
        return TaskStatus(row["status"]) if row else None

    def all_numbers(self) -> set:
        """Every persisted task number."""
        return {row["task_number"] for row in self._fetchall("SELECT task_number FROM tasks")}

    def update_fields(self, task_id: int, updates: Dict[str, Any]) -> int:
        """Update task fields.

        Args:
            task_id: Task ID to update
            updates: Dictionary of fields to update

        Returns:
            Number of rows affected

        Raises:
            ValueError: If any update key is not in the allowed fields whitelist
        """
        if not updates:
            return 0

        # Validate all keys against whitelist to prevent SQL injection
        invalid_fields = set(updates.keys()) - ALLOWED_TASK_FIELDS
        if invalid_fields:
            raise ValueError(
                f"Invalid task fields: {invalid_fields}. "
                f"Allowed fields: {ALLOWED_TASK_FIELDS}"
            )

        fields = []
        values: List[Any] = []
        for key, value in updates.items():
            # Safe to use key here since it's been validated against whitelist
            fields.append(f"{key} = ?")
            if isinstance(value, TaskStatus):
                values.append(value.value)
            elif key in LIST_FIELDS:
                values.append(self._dump_list(value))
            else:
                values.append(value)

        values.append(task_id)
        cursor = self._execute(
            f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", tuple(values)
        )
        return cursor.rowcount

    def set_completion_percentage(self, task_id: int, percentage: int) -> None:
        """Persist a derived completion percentage."""
        self._execute(
            "UPDATE tasks SET completion_percentage = ? WHERE id = ?",
            (percentage, task_id),
        )

    def mark_completed(self, task_id: int) -> None:
        """Set status completed with 100% completion."""
        self._execute(
            "UPDATE tasks SET status = ?, completion_percentage = 100 WHERE id = ?",
            (TaskStatus.COMPLETED.value, task_id),
        )

    def count_subtree(self, task_id: int) -> int:
        """Number of rows in the subtree rooted at task_id (itself included)."""
        row = self._fetchone(
            """
            WITH RECURSIVE subtree(id) AS (
                SELECT id FROM tasks WHERE id = ?
                UNION ALL
                SELECT t.id FROM tasks t INNER JOIN subtree s ON t.parent_id = s.id
            )
            SELECT COUNT(*) AS count FROM subtree
            """,
            (task_id,),
        )
        return row["count"]

    def delete(self, task_id: int) -> int:
        """Delete a task; descendants and dependency edges cascade.

        Returns:
            Number of rows deleted directly (0 or 1)
        """
        cursor = self._execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cursor.rowcount

    def delete_all(self) -> int:
        """Delete every task and dependency edge.

        Returns:
            Number of tasks deleted
        """
        count = self.count()
        self._execute("DELETE FROM task_dependencies")
        self._execute("DELETE FROM tasks")
        return count

    def count(self) -> int:
        return self._fetchone("SELECT COUNT(*) AS count FROM tasks")["count"]

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        parent_id: Optional[int] = None,
        root_only: bool = False,
        exclude_completed: bool = False,
    ) -> List[Task]:
        """List tasks in numeric order.

        Args:
            status: Only tasks with this status
            parent_id: Only direct children of this task
            root_only: Only tasks without a parent
            exclude_completed: Drop completed tasks
        """
        conditions = []
        values: List[Any] = []

        if status is not None:
            conditions.append("status = ?")
            values.append(TaskStatus(status).value)
        if parent_id is not None:
            conditions.append("parent_id = ?")
            values.append(parent_id)
        if root_only:
            conditions.append("parent_id IS NULL")
        if exclude_completed:
            conditions.append("status != 'completed'")

        query = "SELECT * FROM tasks"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += f" {NUMERIC_ORDER}"

        return self._rows_to_tasks(self._fetchall(query, tuple(values)))

    def list_by_statuses(self, statuses: Iterable[TaskStatus]) -> List[Task]:
        """Tasks whose status is in ``statuses``, numeric order."""
        status_values = [TaskStatus(s).value for s in statuses]
        placeholders = ", ".join("?" for _ in status_values)
        rows = self._fetchall(
            f"SELECT * FROM tasks WHERE status IN ({placeholders}) {NUMERIC_ORDER}",
            tuple(status_values),
        )
        return self._rows_to_tasks(rows)

    def children_counts(self, parent_id: int) -> tuple:
        """(total, completed) counts of a task's direct children."""
        row = self._fetchone(
            """
            SELECT COUNT(*) AS total,
                   COUNT(CASE WHEN status = 'completed' THEN 1 END) AS completed
            FROM tasks WHERE parent_id = ?
            """,
            (parent_id,),
        )
        return row["total"], row["completed"]

    def first_with_status_after(
        self,
        statuses: Iterable[TaskStatus],
        after_number: Optional[str] = None,
    ) -> Optional[Task]:
        """First task in numeric order with one of ``statuses``, strictly after a number."""
        status_values = [TaskStatus(s).value for s in statuses]
        placeholders = ", ".join("?" for _ in status_values)
        query = f"SELECT * FROM tasks WHERE status IN ({placeholders})"
        values: List[Any] = list(status_values)
        if after_number is not None:
            query += " AND task_number COLLATE TASK_NUMBER > ?"
            values.append(after_number)
        query += f" {NUMERIC_ORDER} LIMIT 1"
        row = self._fetchone(query, tuple(values))
        return self._row_to_task(row) if row else None

    def last_before(self, before_number: str) -> Optional[Task]:
        """Last task in numeric order strictly before a number, any status."""
        row = self._fetchone(
            """
            SELECT * FROM tasks
            WHERE task_number COLLATE TASK_NUMBER < ?
            ORDER BY task_number COLLATE TASK_NUMBER DESC
            LIMIT 1
            """,
            (before_number,),
        )
        return self._row_to_task(row) if row else None

    def count_by_status(self) -> Dict[str, int]:
        """Count tasks per status value."""
        rows = self._fetchall("SELECT status, COUNT(*) AS count FROM tasks GROUP BY status")
        return {row["status"]: row["count"] for row in rows}

    def search(self, query: str) -> List[Task]:
        """Case-insensitive substring match on number, name and description."""
        needle = query.casefold()
        rows = self._fetchall(
            f"""
            SELECT * FROM tasks
            WHERE instr(CASEFOLD(task_number), ?) > 0
               OR instr(CASEFOLD(name), ?) > 0
               OR instr(CASEFOLD(description), ?) > 0
            {NUMERIC_ORDER}
            """,
            (needle, needle, needle),
        )
        return self._rows_to_tasks(rows)

    def dependencies_of(self, task_id: int) -> List[Task]:
        """Tasks that task_id depends on, numeric order."""
        rows = self._fetchall(
            """
            SELECT t.* FROM tasks t
            INNER JOIN task_dependencies td ON t.id = td.depends_on_id
            WHERE td.task_id = ?
            ORDER BY t.task_number COLLATE TASK_NUMBER
            """,
            (task_id,),
        )
        return self._rows_to_tasks(rows)

    def dependents_of(self, task_id: int) -> List[Task]:
        """Tasks that depend on task_id, numeric order."""
        rows = self._fetchall(
            """
            SELECT t.* FROM tasks t
            INNER JOIN task_dependencies td ON t.id = td.task_id
            WHERE td.depends_on_id = ?
            ORDER BY t.task_number COLLATE TASK_NUMBER
            """,
            (task_id,),
        )
        return self._rows_to_tasks(rows)

    def progress_rows(self) -> List[sqlite3.Row]:
        """Every task with its direct-children counts, numeric order."""
        return self._fetchall(
            """
            SELECT p.id, p.task_number, p.name, p.status, p.parent_id,
                   COUNT(c.id) AS total_children,
                   COUNT(CASE WHEN c.status = 'completed' THEN 1 END) AS completed_children
            FROM tasks p
            LEFT JOIN tasks c ON c.parent_id = p.id
            GROUP BY p.id
            ORDER BY p.task_number COLLATE TASK_NUMBER
            """
        )

    def _dependency_map(self, task_ids: List[int]) -> Dict[int, List[str]]:
        """Dependency numbers for a set of tasks, each list in numeric order."""
        if not task_ids:
            return {}
        wanted = set(task_ids)
        query = """
            SELECT td.task_id, t.task_number FROM task_dependencies td
            INNER JOIN tasks t ON t.id = td.depends_on_id
        """
        params: tuple = ()
        if len(task_ids) == 1:
            query += " WHERE td.task_id = ?"
            params = (task_ids[0],)
        rows = self._fetchall(query + " ORDER BY t.task_number COLLATE TASK_NUMBER", params)
        result: Dict[int, List[str]] = {task_id: [] for task_id in task_ids}
        for row in rows:
            if row["task_id"] in wanted:
                result[row["task_id"]].append(row["task_number"])
        return result

    def _rows_to_tasks(self, rows: List[sqlite3.Row]) -> List[Task]:
        dependency_map = self._dependency_map([row["id"] for row in rows])
        return [self._row_to_task(row, dependency_map.get(row["id"], [])) for row in rows]

    def _row_to_task(self, row: sqlite3.Row, dependencies: Optional[List[str]] = None) -> Task:
        """Convert a database row to a Task object."""
        if dependencies is None:
            dependencies = self._dependency_map([row["id"]]).get(row["id"], [])
        return Task(
            id=row["id"],
            parent_id=row["parent_id"],
            task_number=row["task_number"],
            name=row["name"],
            description=row["description"],
            docs_references=self._load_list(row["docs_references"]),
            testing_strategy=row["testing_strategy"],
            status=TaskStatus(row["status"]),
            priority=row["priority"] if row["priority"] is not None else 0,
            files=self._load_list(row["files"]),
            notes=row["notes"],
            completion_notes=row["completion_notes"],
            completion_percentage=int(row["completion_percentage"] or 0),
            dependencies=dependencies,
            created_at=self._parse_datetime(row["created_at"], "created_at", row["id"]),
            updated_at=self._parse_datetime(row["updated_at"], "updated_at", row["id"]),
        )
