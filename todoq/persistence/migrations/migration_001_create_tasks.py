"""Migration 001: Create the tasks table.

Tasks own their children through parent_id; deleting a parent cascades to
every descendant. docs_references and files are stored as JSON text.
"""

import sqlite3
import logging
from todoq.persistence.migrations import Migration

logger = logging.getLogger(__name__)


class CreateTasksTable(Migration):
    """Create the tasks table."""

    def __init__(self):
        super().__init__(version=1, name="Create tasks table")

    def apply(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE tasks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                parent_id INTEGER REFERENCES tasks(id) ON DELETE CASCADE,
                task_number TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                docs_references TEXT,
                testing_strategy TEXT,
                status TEXT CHECK(status IN ('pending', 'in_progress', 'completed', 'cancelled')) DEFAULT 'pending',
                priority INTEGER DEFAULT 0 CHECK(priority BETWEEN 0 AND 10),
                files TEXT,
                notes TEXT,
                completion_notes TEXT,
                completion_percentage INTEGER DEFAULT 0 CHECK(completion_percentage BETWEEN 0 AND 100),
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def rollback(self, conn: sqlite3.Connection) -> None:
        conn.execute("DROP TABLE IF EXISTS tasks")
