"""SQLite persistence for todoq."""

from todoq.persistence.database import Database

__all__ = ["Database"]
