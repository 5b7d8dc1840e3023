"""Tests for the migration runner and the shipped migrations."""

import sqlite3

import pytest

from todoq.core.errors import StorageError
from todoq.persistence.migrations import Migration, MigrationRunner, create_runner, get_migrations
from todoq.persistence.migrations.migration_002_task_indexes import CreateTaskIndexes


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:", isolation_level=None)
    connection.execute("PRAGMA foreign_keys = ON")
    yield connection
    connection.close()


def _names(conn, kind):
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = ?", (kind,)).fetchall()
    return {row[0] for row in rows}


class BrokenMigration(Migration):
    """Creates a table, then fails."""

    def __init__(self):
        super().__init__(version=99, name="Broken")

    def apply(self, conn):
        conn.execute("CREATE TABLE half_done (id INTEGER)")
        conn.execute("THIS IS NOT SQL")


class TestMigrationRunner:
    """Tests for MigrationRunner."""

    def test_applies_all_in_order(self, conn):
        assert create_runner(conn).apply_all() == [1, 2, 3, 4]

    def test_second_run_applies_nothing(self, conn):
        create_runner(conn).apply_all()
        assert create_runner(conn).apply_all() == []

    def test_list_applied(self, conn):
        runner = create_runner(conn)
        runner.apply_all()

        applied = runner.list_applied()

        assert [m["version"] for m in applied] == [1, 2, 3, 4]
        assert applied[0]["name"] == "Create tasks table"
        assert all(m["applied_at"] for m in applied)

    def test_duplicate_registration_rejected(self, conn):
        runner = MigrationRunner(conn)
        runner.register(CreateTaskIndexes())
        with pytest.raises(ValueError):
            runner.register(CreateTaskIndexes())

    def test_migrations_sorted_by_version(self, conn):
        runner = MigrationRunner(conn)
        for migration in reversed(get_migrations()):
            runner.register(migration)
        assert [m.version for m in runner.migrations] == [1, 2, 3, 4]

    def test_failed_migration_rolled_back(self, conn):
        runner = create_runner(conn)
        runner.register(BrokenMigration())

        with pytest.raises(StorageError) as exc_info:
            runner.apply_all()

        assert "migration 99" in exc_info.value.operation
        assert "half_done" not in _names(conn, "table")
        assert [m["version"] for m in runner.list_applied()] == [1, 2, 3, 4]
        assert conn.in_transaction is False

    def test_can_apply_false_skips(self, conn):
        """Indexes need the tasks table."""
        runner = MigrationRunner(conn)
        runner.register(CreateTaskIndexes())

        assert runner.apply_all() == []
        assert runner.list_applied() == []

    def test_rollback(self, conn):
        runner = create_runner(conn)
        runner.apply_all()

        runner.rollback(4)

        assert "update_tasks_updated_at" not in _names(conn, "trigger")
        assert [m["version"] for m in runner.list_applied()] == [1, 2, 3]
        assert runner.apply_all() == [4]

    def test_rollback_unknown_version(self, conn):
        with pytest.raises(ValueError):
            create_runner(conn).rollback(42)


class TestSchema:
    """Tests for the schema produced by the shipped migrations."""

    def test_tables_indexes_and_trigger(self, conn):
        create_runner(conn).apply_all()

        assert {"tasks", "task_dependencies", "migrations"} <= _names(conn, "table")
        assert {
            "idx_tasks_status",
            "idx_tasks_parent_id",
            "idx_tasks_task_number",
            "idx_tasks_priority",
            "idx_dependencies_task_id",
            "idx_dependencies_depends_on_id",
        } <= _names(conn, "index")
        assert "update_tasks_updated_at" in _names(conn, "trigger")

    def test_status_check_constraint(self, conn):
        create_runner(conn).apply_all()
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO tasks (task_number, name, status) VALUES ('1.0', 'x', 'done')")

    def test_unique_task_number(self, conn):
        create_runner(conn).apply_all()
        conn.execute("INSERT INTO tasks (task_number, name) VALUES ('1.0', 'x')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO tasks (task_number, name) VALUES ('1.0', 'y')")

    def test_dependency_constraints(self, conn):
        create_runner(conn).apply_all()
        conn.execute("INSERT INTO tasks (id, task_number, name) VALUES (1, '1.0', 'x')")
        conn.execute("INSERT INTO tasks (id, task_number, name) VALUES (2, '2.0', 'y')")
        conn.execute("INSERT INTO task_dependencies (task_id, depends_on_id) VALUES (2, 1)")

        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO task_dependencies (task_id, depends_on_id) VALUES (2, 1)")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("INSERT INTO task_dependencies (task_id, depends_on_id) VALUES (1, 1)")

    def test_parent_delete_cascades(self, conn):
        create_runner(conn).apply_all()
        conn.execute("INSERT INTO tasks (id, task_number, name) VALUES (1, '1.0', 'p')")
        conn.execute("INSERT INTO tasks (id, task_number, name, parent_id) VALUES (2, '1.1', 'c', 1)")
        conn.execute("INSERT INTO tasks (id, task_number, name, parent_id) VALUES (3, '1.1.1', 'g', 2)")

        conn.execute("DELETE FROM tasks WHERE id = 1")

        assert conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0] == 0
