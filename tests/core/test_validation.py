"""Tests for batch and single-task validation."""

import pytest

from todoq.core.errors import (
    CircularDependencyError,
    DependencyNotFoundError,
    DuplicateNumberError,
    InvalidHierarchyError,
    InvalidNumberFormatError,
    ParentNotFoundError,
    TaskValidationError,
)
from todoq.core.models import TASK_NUMBER_MESSAGE, TaskInput
from todoq.core.validation import TaskValidator, find_back_edges


@pytest.fixture
def validator():
    return TaskValidator()


def _task(number, parent=None, dependencies=None, **extra):
    data = {"number": number, "name": f"Task {number}"}
    if parent is not None:
        data["parent"] = parent
    if dependencies is not None:
        data["dependencies"] = dependencies
    data.update(extra)
    return data


class TestFindBackEdges:
    """Tests for the iterative cycle search."""

    def test_acyclic_graph(self):
        graph = {"1.0": [], "2.0": ["1.0"], "3.0": ["1.0", "2.0"]}
        assert find_back_edges(graph) == []

    def test_two_node_cycle_names_both_endpoints(self):
        edges = find_back_edges({"A": ["B"], "B": ["A"]})
        assert edges == [("B", "A")]

    def test_self_loop(self):
        assert find_back_edges({"1.0": ["1.0"]}) == [("1.0", "1.0")]

    def test_edges_outside_graph_ignored(self):
        assert find_back_edges({"1.0": ["9.9"]}) == []

    def test_long_chain_does_not_recurse(self):
        """A chain far deeper than the recursion limit is handled."""
        size = 5000
        graph = {str(i): [str(i + 1)] for i in range(size)}
        graph[str(size)] = ["0"]
        edges = find_back_edges(graph)
        assert edges == [(str(size), "0")]


class TestValidateImport:
    """Tests for TaskValidator.validate_import."""

    def test_valid_batch(self, validator):
        report = validator.validate_import(
            [_task("1.0"), _task("1.1", parent="1.0"), _task("2.0", dependencies=["1.0"])]
        )

        assert report.valid is True
        assert report.errors == []
        assert report.summary == {"total": 3, "valid": 3, "invalid": 0}

    def test_circular_dependency(self, validator):
        """A depends on B and B depends on A."""
        report = validator.validate_import(
            [_task("1.0", dependencies=["2.0"]), _task("2.0", dependencies=["1.0"])]
        )

        assert report.valid is False
        cycle_errors = [e for e in report.errors if e.code == CircularDependencyError.code]
        assert len(cycle_errors) == 1
        assert cycle_errors[0].field == "dependencies"
        assert cycle_errors[0].error == "Circular dependency detected: 2.0 -> 1.0"

    def test_self_dependency_is_a_cycle(self, validator):
        report = validator.validate_import([_task("1.0", dependencies=["1.0"])])

        assert report.valid is False
        assert [e.code for e in report.errors] == [CircularDependencyError.code]

    def test_duplicate_number_in_batch(self, validator):
        report = validator.validate_import([_task("1.0"), _task("1.0")])

        assert report.valid is False
        assert report.errors[0].error == "Duplicate task number"
        assert report.errors[0].code == DuplicateNumberError.code
        assert report.summary == {"total": 2, "valid": 1, "invalid": 1}
        assert report.invalid_positions == [1]

    def test_parent_not_found(self, validator):
        report = validator.validate_import([_task("1.1", parent="1.0")])

        assert report.valid is False
        assert report.errors[0].field == "parent"
        assert report.errors[0].error == "Parent task 1.0 not found"
        assert report.errors[0].code == ParentNotFoundError.code

    def test_dependency_not_found(self, validator):
        report = validator.validate_import([_task("2.0", dependencies=["1.0"])])

        assert report.valid is False
        assert report.errors[0].error == "Dependency 1.0 not found"
        assert report.errors[0].code == DependencyNotFoundError.code

    def test_existing_numbers_satisfy_references(self, validator):
        report = validator.validate_import(
            [_task("1.1", parent="1.0", dependencies=["3.0"])],
            existing_numbers={"1.0", "3.0"},
        )
        assert report.valid is True

    def test_invalid_hierarchy(self, validator):
        report = validator.validate_import([_task("1.0"), _task("2.1", parent="1.0")])

        assert report.valid is False
        issue = report.errors_for("2.1")[0]
        assert issue.code == InvalidHierarchyError.code
        assert issue.error == "Task number 2.1 must extend or follow parent 1.0"

    def test_both_hierarchy_branches_accepted(self, validator):
        report = validator.validate_import(
            [_task("1.0"), _task("1.0.1", parent="1.0"), _task("1.1", parent="1.0")]
        )
        assert report.valid is True

    def test_invalid_number_format(self, validator):
        report = validator.validate_import([{"number": "1.a", "name": "Bad"}])

        assert report.valid is False
        assert report.errors[0].task == "1.a"
        assert report.errors[0].field == "number"
        assert report.errors[0].error == TASK_NUMBER_MESSAGE
        assert report.errors[0].code == InvalidNumberFormatError.code

    def test_schema_errors(self, validator):
        report = validator.validate_import(
            [
                {"number": "1.0", "name": ""},
                {"number": "2.0", "name": "Ok", "priority": 11},
                {"number": "3.0", "name": "   "},
                {"number": "4.0", "name": "Ok", "docs_references": ["not a url"]},
            ]
        )

        assert report.valid is False
        assert report.summary == {"total": 4, "valid": 0, "invalid": 4}
        assert report.errors_for("1.0")[0].field == "name"
        assert report.errors_for("2.0")[0].field == "priority"
        assert report.errors_for("3.0")[0].error == "Task name is required"
        url_issue = report.errors_for("4.0")[0]
        assert url_issue.field.startswith("docs_references")
        assert url_issue.error == "Invalid URL format"

    def test_invalid_task_counted_once(self, validator):
        """A task with several problems counts as one invalid task."""
        report = validator.validate_import(
            [_task("2.1", parent="1.0", dependencies=["9.0", "8.0"])]
        )

        assert len(report.errors) == 4
        assert report.summary == {"total": 1, "valid": 0, "invalid": 1}

    def test_non_dict_entry(self, validator):
        report = validator.validate_import(["not a task"])

        assert report.valid is False
        assert report.errors[0].task == "unknown"

    def test_report_serialization(self, validator):
        report = validator.validate_import([_task("1.1", parent="1.0")])

        data = report.to_dict()
        assert data["valid"] is False
        assert data["errors"] == [
            {"task": "1.1", "field": "parent", "error": "Parent task 1.0 not found"}
        ]
        assert data["summary"] == {"total": 1, "valid": 0, "invalid": 1}

    def test_report_never_raises(self, validator):
        report = validator.validate_import([None, 42, {"number": None}])
        assert report.summary["invalid"] == 3


class TestValidateSingle:
    """Tests for TaskValidator.validate_single."""

    def test_duplicate_against_storage(self, validator):
        report = validator.validate_single(TaskInput(number="1.0", name="x"), {"1.0"})

        assert report.valid is False
        assert report.errors[0].code == DuplicateNumberError.code

    def test_self_dependency(self, validator):
        report = validator.validate_single(
            TaskInput(number="1.0", name="x", dependencies=["1.0"]), set()
        )

        assert [e.code for e in report.errors] == [CircularDependencyError.code]

    def test_valid(self, validator):
        report = validator.validate_single(
            TaskInput(number="1.1", name="x", parent="1.0"), {"1.0"}
        )
        assert report.valid is True


class TestParseInput:
    """Tests for parse_input / parse_patch."""

    def test_invalid_number_raises_format_error(self, validator):
        with pytest.raises(InvalidNumberFormatError) as exc_info:
            validator.parse_input({"number": "abc", "name": "x"})
        assert exc_info.value.task_number == "abc"

    def test_other_schema_error(self, validator):
        with pytest.raises(TaskValidationError) as exc_info:
            validator.parse_input({"number": "1.0", "name": "x", "priority": -1})
        assert exc_info.value.issues[0]["field"] == "priority"

    def test_unknown_input_fields_ignored(self, validator):
        task = validator.parse_input({"number": "1.0", "name": "x", "estimate": 3})
        assert task.number == "1.0"

    def test_patch_rejects_unknown_fields(self, validator):
        with pytest.raises(TaskValidationError):
            validator.parse_patch({"task_number": "2.0"})

    def test_patch_rejects_direct_percentage(self, validator):
        with pytest.raises(TaskValidationError):
            validator.parse_patch({"completion_percentage": 50})
