"""Migration 003: Create the task_dependencies table.

Each row is a directed edge "task_id cannot be completed until depends_on_id
is completed". Edges disappear with either endpoint.
"""

import sqlite3
import logging
from todoq.persistence.migrations import Migration

logger = logging.getLogger(__name__)


class CreateTaskDependencies(Migration):
    """Create task_dependencies with indexes on both columns."""

    def __init__(self):
        super().__init__(version=3, name="Create task dependencies table")

    def apply(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE task_dependencies (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                depends_on_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                UNIQUE(task_id, depends_on_id),
                CHECK(task_id != depends_on_id)
            )
            """
        )
        conn.execute(
            "CREATE INDEX idx_dependencies_task_id ON task_dependencies(task_id)"
        )
        conn.execute(
            "CREATE INDEX idx_dependencies_depends_on_id ON task_dependencies(depends_on_id)"
        )

    def rollback(self, conn: sqlite3.Connection) -> None:
        conn.execute("DROP TABLE IF EXISTS task_dependencies")
