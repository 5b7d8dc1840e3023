"""Database migrations for todoq."""

from typing import List
import sqlite3
import logging

from todoq.core.errors import StorageError

logger = logging.getLogger(__name__)


class Migration:
    """Base class for database migrations."""

    def __init__(self, version: int, name: str):
        self.version = version
        self.name = name

    def apply(self, conn: sqlite3.Connection) -> None:
        """Apply the migration."""
        raise NotImplementedError

    def rollback(self, conn: sqlite3.Connection) -> None:
        """Rollback the migration."""
        raise NotImplementedError

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        """Check if migration can be applied."""
        return True


class MigrationRunner:
    """Applies registered migrations exactly once, each in its own transaction.

    The connection must be in autocommit mode (``isolation_level=None``) so
    that the runner controls BEGIN/COMMIT itself.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.migrations: List[Migration] = []

    def register(self, migration: Migration) -> None:
        """Register a migration."""
        if any(m.version == migration.version for m in self.migrations):
            raise ValueError(f"Migration {migration.version} already registered")
        self.migrations.append(migration)
        self.migrations.sort(key=lambda m: m.version)

    def apply_all(self) -> List[int]:
        """Apply all pending migrations.

        Returns:
            Versions applied by this call, in order

        Raises:
            StorageError: If a migration fails (its transaction is rolled back)
        """
        self._ensure_table()
        applied: List[int] = []

        for migration in self.migrations:
            try:
                # Lock before checking so a concurrent process cannot apply it twice
                self.conn.execute("BEGIN IMMEDIATE")
                if self._is_applied(migration.version):
                    self.conn.execute("COMMIT")
                    logger.debug(f"Migration {migration.version} already applied, skipping")
                    continue

                if not migration.can_apply(self.conn):
                    self.conn.execute("COMMIT")
                    logger.warning(f"Migration {migration.version} cannot be applied, skipping")
                    continue

                logger.info(f"Applying migration {migration.version}: {migration.name}")
                migration.apply(self.conn)
                self.conn.execute(
                    "INSERT INTO migrations (version, name) VALUES (?, ?)",
                    (migration.version, migration.name),
                )
                self.conn.execute("COMMIT")
                applied.append(migration.version)
                logger.info(f"Migration {migration.version} applied successfully")

            except sqlite3.Error as e:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                logger.error(f"Migration {migration.version} failed: {e}")
                raise StorageError(f"migration {migration.version} ({migration.name})", e) from e

        return applied

    def rollback(self, version: int) -> None:
        """Rollback a specific migration."""
        migration = next((m for m in self.migrations if m.version == version), None)
        if not migration:
            raise ValueError(f"Migration {version} not found")

        self._ensure_table()
        if not self._is_applied(version):
            logger.warning(f"Migration {version} not applied, nothing to rollback")
            return

        try:
            self.conn.execute("BEGIN IMMEDIATE")
            logger.info(f"Rolling back migration {version}: {migration.name}")
            migration.rollback(self.conn)
            self.conn.execute("DELETE FROM migrations WHERE version = ?", (version,))
            self.conn.execute("COMMIT")
            logger.info(f"Migration {version} rolled back successfully")
        except sqlite3.Error as e:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            logger.error(f"Rollback failed: {e}")
            raise StorageError(f"rollback of migration {version}", e) from e

    def list_applied(self) -> List[dict]:
        """List all applied migrations."""
        self._ensure_table()
        cursor = self.conn.execute(
            "SELECT version, name, applied_at FROM migrations ORDER BY version"
        )
        return [
            {"version": row[0], "name": row[1], "applied_at": row[2]}
            for row in cursor.fetchall()
        ]

    def _ensure_table(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                version INTEGER UNIQUE NOT NULL,
                name TEXT NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def _is_applied(self, version: int) -> bool:
        """Check if migration has been applied."""
        cursor = self.conn.execute("SELECT 1 FROM migrations WHERE version = ?", (version,))
        return cursor.fetchone() is not None


def get_migrations() -> List[Migration]:
    """All schema migrations shipped with todoq, oldest first."""
    from todoq.persistence.migrations.migration_001_create_tasks import CreateTasksTable
    from todoq.persistence.migrations.migration_002_task_indexes import CreateTaskIndexes
    from todoq.persistence.migrations.migration_003_task_dependencies import (
        CreateTaskDependencies,
    )
    from todoq.persistence.migrations.migration_004_updated_at_trigger import (
        CreateUpdatedAtTrigger,
    )

    return [
        CreateTasksTable(),
        CreateTaskIndexes(),
        CreateTaskDependencies(),
        CreateUpdatedAtTrigger(),
    ]


def create_runner(conn: sqlite3.Connection) -> MigrationRunner:
    """Build a runner with every shipped migration registered."""
    runner = MigrationRunner(conn)
    for migration in get_migrations():
        runner.register(migration)
    return runner


__all__ = ["Migration", "MigrationRunner", "get_migrations", "create_runner"]
