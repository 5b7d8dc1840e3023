"""Base repository class for database operations."""

import json
import sqlite3
from datetime import datetime
from typing import Any, List, Optional
import logging

from todoq.core.errors import StorageError

logger = logging.getLogger(__name__)


class BaseRepository:
    """Base class for all repositories.

    Provides common database utilities. Repositories never commit: the
    owning Database decides transaction boundaries.
    """

    def __init__(
        self,
        sync_conn: Optional[sqlite3.Connection] = None,
        database: Optional[Any] = None,
    ):
        """Initialize repository with a database connection.

        Args:
            sync_conn: sqlite3.Connection in autocommit mode
            database: Reference to parent Database instance (for transactions)
        """
        if sync_conn is None:
            raise ValueError("A database connection must be provided")

        self.conn = sync_conn
        self._database = database

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a query.

        Raises:
            StorageError: Wrapping any sqlite3 failure
        """
        try:
            return self.conn.execute(query, params)
        except sqlite3.Error as e:
            operation = " ".join(query.split()[:3]).lower()
            logger.error(f"Query failed ({operation}): {e}")
            raise StorageError(operation, e) from e

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Fetch a single row, or None if no results."""
        return self._execute(query, params).fetchone()

    def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Fetch all rows."""
        return self._execute(query, params).fetchall()

    def _parse_datetime(
        self,
        dt_str: Optional[str],
        field_name: str = "",
        row_id: Optional[int] = None,
    ) -> Optional[datetime]:
        """Parse an SQLite timestamp ("2024-11-23 10:30:00") to datetime.

        Raises:
            ValueError: If datetime string is malformed
        """
        if dt_str is None:
            return None

        try:
            return datetime.fromisoformat(dt_str.replace("T", " "))
        except (ValueError, AttributeError) as e:
            context = f" for {field_name}" if field_name else ""
            row_context = f" (row {row_id})" if row_id else ""
            logger.warning(
                f"Failed to parse datetime '{dt_str}'{context}{row_context}: {e}"
            )
            raise ValueError(f"Invalid datetime format: {dt_str}") from e

    def _dump_list(self, values: Optional[List[str]]) -> Optional[str]:
        """Serialize a list column to JSON text (NULL when absent)."""
        if values is None:
            return None
        return json.dumps(list(values))

    def _load_list(self, raw: Optional[str]) -> List[str]:
        """Deserialize a JSON list column."""
        if not raw:
            return []
        value = json.loads(raw)
        return list(value) if isinstance(value, list) else []
