"""Migration 004: Refresh tasks.updated_at on every update."""

import sqlite3
import logging
from todoq.persistence.migrations import Migration

logger = logging.getLogger(__name__)


class CreateUpdatedAtTrigger(Migration):
    """Create the update_tasks_updated_at trigger."""

    def __init__(self):
        super().__init__(version=4, name="Create updated_at trigger")

    def apply(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TRIGGER update_tasks_updated_at
            AFTER UPDATE ON tasks
            FOR EACH ROW
            WHEN NEW.updated_at = OLD.updated_at
            BEGIN
                UPDATE tasks SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
            END
            """
        )

    def rollback(self, conn: sqlite3.Connection) -> None:
        conn.execute("DROP TRIGGER IF EXISTS update_tasks_updated_at")
