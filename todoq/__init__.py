"""
todoq: hierarchical task queue

Tasks are numbered like 1.0, 1.1, 1.1.1, ordered numerically, linked by
dependencies, and completed bottom-up with automatic parent completion.
"""

__version__ = "0.1.0"

from todoq.core.tasks import TaskService
from todoq.persistence.database import Database

__all__ = ["TaskService", "Database"]
