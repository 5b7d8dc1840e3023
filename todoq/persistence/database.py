"""Database management for todoq state."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union
import logging

from todoq.core.errors import StorageError
from todoq.core.numbering import COLLATION_NAME, collate_task_numbers
from todoq.persistence.migrations import create_runner
from todoq.persistence.repositories import TaskRepository

logger = logging.getLogger(__name__)


def casefold_text(value: Optional[str]) -> Optional[str]:
    """SQL CASEFOLD(): Unicode-aware lowercasing for case-insensitive search."""
    return value.casefold() if value is not None else None


class Database:
    """SQLite database manager for the task store.

    Several short-lived processes may open the same file. WAL journaling
    lets readers proceed while a writer holds the lock, and the busy timeout
    makes a second writer wait instead of failing immediately.

    Transactions:
        The connection runs in autocommit mode; ``transaction()`` opens an
        explicit ``BEGIN IMMEDIATE`` transaction. Nested ``transaction()``
        scopes become savepoints, so an inner failure only rolls back its
        own work when the caller handles the exception.

    Example:
        db = Database(".todoq/todoq.db")
        db.initialize()

        with db.transaction():
            db.tasks.update_fields(task_id, {"status": "completed"})

        db.close()
    """

    def __init__(
        self,
        db_path: Union[Path, str],
        wal_mode: bool = True,
        busy_timeout: float = 5.0,
    ):
        self.db_path = Path(db_path) if db_path != ":memory:" else db_path
        self.wal_mode = wal_mode
        self.busy_timeout = busy_timeout
        self.conn: Optional[sqlite3.Connection] = None
        self.tasks: Optional[TaskRepository] = None
        self._depth = 0

    def initialize(self, run_migrations: bool = True) -> None:
        """Open the connection, apply pragmas and run pending migrations.

        Args:
            run_migrations: Apply pending schema migrations (default True)

        Raises:
            StorageError: If the database cannot be opened or migrated
        """
        # Create parent directories if needed (skip for in-memory databases)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout,
                isolation_level=None,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.create_collation(COLLATION_NAME, collate_task_numbers)
            self.conn.create_function("CASEFOLD", 1, casefold_text, deterministic=True)
            self._configure()
        except sqlite3.Error as e:
            logger.error(f"Failed to open database {self.db_path}: {e}")
            self.close()
            raise StorageError(f"open {self.db_path}", e) from e

        if run_migrations:
            try:
                create_runner(self.conn).apply_all()
            except StorageError:
                self.close()
                raise

        self.tasks = TaskRepository(sync_conn=self.conn, database=self)

    def _configure(self) -> None:
        """Apply connection pragmas."""
        if self.wal_mode and self.db_path != ":memory:":
            self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA temp_store = MEMORY")
        self.conn.execute("PRAGMA cache_size = -64000")  # 64MB

    @property
    def journal_mode(self) -> str:
        """Current SQLite journal mode (e.g. "wal")."""
        return self.conn.execute("PRAGMA journal_mode").fetchone()[0]

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block atomically.

        The outermost scope commits on success and rolls back on any
        exception; inner scopes use savepoints. Exceptions always propagate.
        """
        if self.conn is None:
            raise StorageError("transaction", RuntimeError("Database is not initialized"))

        savepoint = f"sp_{self._depth}"
        try:
            if self._depth == 0:
                self.conn.execute("BEGIN IMMEDIATE")
            else:
                self.conn.execute(f"SAVEPOINT {savepoint}")
        except sqlite3.Error as e:
            raise StorageError("begin transaction", e) from e

        self._depth += 1
        try:
            yield self.conn
        except BaseException:
            self._depth -= 1
            # SQLite may already have rolled back after a fatal error
            if self.conn.in_transaction:
                if self._depth == 0:
                    self.conn.execute("ROLLBACK")
                else:
                    self.conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                    self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            raise
        else:
            self._depth -= 1
            try:
                if self._depth == 0:
                    self.conn.execute("COMMIT")
                else:
                    self.conn.execute(f"RELEASE SAVEPOINT {savepoint}")
            except sqlite3.Error as e:
                if self._depth == 0 and self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise StorageError("commit transaction", e) from e

    def backup(self, backup_path: Union[Path, str]) -> Path:
        """Copy the live database into another file.

        Returns:
            Path of the written backup
        """
        target = Path(backup_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            dest = sqlite3.connect(str(target))
            try:
                self.conn.backup(dest)
            finally:
                dest.close()
        except sqlite3.Error as e:
            logger.error(f"Backup to {target} failed: {e}")
            raise StorageError(f"backup to {target}", e) from e
        logger.info(f"Database backed up to {target}")
        return target

    def close(self) -> None:
        """Close the connection if open."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            self.tasks = None
            self._depth = 0

    def __enter__(self) -> "Database":
        if self.conn is None:
            self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
