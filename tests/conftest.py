"""Shared pytest fixtures for todoq tests."""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from todoq.config import TodoqSettings
from todoq.core.navigation import NavigationService
from todoq.core.tasks import TaskService
from todoq.persistence.database import Database


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for testing.

    Yields:
        Path to temporary directory that will be cleaned up after test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Provide a temporary database path."""
    return temp_dir / "todoq.db"


@pytest.fixture
def settings(temp_db_path: Path) -> TodoqSettings:
    """Settings pointing at the temporary database."""
    return TodoqSettings(database_path=str(temp_db_path))


@pytest.fixture
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Initialized database with all migrations applied."""
    database = Database(temp_db_path)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def service(db: Database, settings: TodoqSettings) -> TaskService:
    return TaskService(db, settings)


@pytest.fixture
def navigation(db: Database) -> NavigationService:
    return NavigationService(db)


@pytest.fixture
def make_tasks(service: TaskService):
    """Create tasks from (number, parent) pairs or dicts, in the given order."""

    def _make(*entries):
        created = []
        for entry in entries:
            if isinstance(entry, dict):
                data = entry
            else:
                number, parent = entry
                data = {"number": number, "name": f"Task {number}", "parent": parent}
            created.append(service.create(data))
        return created

    return _make
