"""Migration 002: Add indexes for the common task queries.

Indexes added:
- idx_tasks_status: status filters (current/next/remaining)
- idx_tasks_parent_id: child lookups during completion cascades
- idx_tasks_task_number: number lookups
- idx_tasks_priority: priority DESC ordering
"""

import sqlite3
import logging
from todoq.persistence.migrations import Migration

logger = logging.getLogger(__name__)

TASK_INDEXES = {
    "idx_tasks_status": "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "idx_tasks_parent_id": "CREATE INDEX IF NOT EXISTS idx_tasks_parent_id ON tasks(parent_id)",
    "idx_tasks_task_number": "CREATE INDEX IF NOT EXISTS idx_tasks_task_number ON tasks(task_number)",
    "idx_tasks_priority": "CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority DESC)",
}


class CreateTaskIndexes(Migration):
    """Add performance indexes to the tasks table."""

    def __init__(self):
        super().__init__(version=2, name="Create task indexes")

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        """Only applicable once the tasks table exists."""
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='tasks'"
        )
        if not cursor.fetchone():
            logger.info("tasks table doesn't exist yet, skipping migration")
            return False
        return True

    def apply(self, conn: sqlite3.Connection) -> None:
        for name, statement in TASK_INDEXES.items():
            conn.execute(statement)
            logger.debug(f"Created index {name}")

    def rollback(self, conn: sqlite3.Connection) -> None:
        for name in TASK_INDEXES:
            conn.execute(f"DROP INDEX IF EXISTS {name}")
