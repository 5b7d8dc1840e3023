"""Repository layer: SQL access grouped by domain."""

from todoq.persistence.repositories.base import BaseRepository
from todoq.persistence.repositories.task_repository import TaskRepository

__all__ = ["BaseRepository", "TaskRepository"]
