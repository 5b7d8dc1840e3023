"""Unit tests for todoq/core/numbering.py."""

import pytest

from todoq.core.numbering import (
    collate_task_numbers,
    compare_task_numbers,
    extends_parent,
    follows_parent,
    is_valid_hierarchy,
    is_valid_task_number,
    parse_task_number,
    sort_task_numbers,
    task_level,
)


class TestTaskNumberFormat:
    """Tests for task number syntax."""

    @pytest.mark.parametrize("number", ["1", "1.0", "1.2.3", "10.0.25", "007.1"])
    def test_valid_numbers(self, number):
        assert is_valid_task_number(number) is True

    @pytest.mark.parametrize("number", ["", "1.", ".1", "1..2", "a.1", "1.0a", " 1.0", "1-0"])
    def test_invalid_numbers(self, number):
        assert is_valid_task_number(number) is False

    def test_non_string_is_invalid(self):
        assert is_valid_task_number(1.0) is False

    def test_parse_components_as_integers(self):
        assert parse_task_number("1.10.003") == (1, 10, 3)

    def test_parse_invalid_raises(self):
        with pytest.raises(ValueError):
            parse_task_number("1.x")


class TestNumericOrdering:
    """Tests for the numeric comparator."""

    def test_integer_components_not_lexicographic(self):
        """2.0 sorts before 10.0 and 1.2 before 1.10."""
        assert compare_task_numbers("2.0", "10.0") == -1
        assert compare_task_numbers("1.2", "1.10") == -1

    def test_prefix_sorts_first(self):
        assert compare_task_numbers("1.0", "1.0.1") == -1
        assert compare_task_numbers("1.0.1", "1.0") == 1

    def test_equal_numbers(self):
        assert compare_task_numbers("3.1", "3.1") == 0

    def test_leading_zeros_keep_numeric_value(self):
        """01.0 sorts with 1.0, before 2.0."""
        assert sort_task_numbers(["2.0", "01.0", "10.0"]) == ["01.0", "2.0", "10.0"]

    def test_sort_example_sequence(self):
        numbers = ["10.0", "2.0", "1.0", "11.0", "3.0", "20.0"]
        assert sort_task_numbers(numbers) == ["1.0", "2.0", "3.0", "10.0", "11.0", "20.0"]

    def test_sorted_output_is_pairwise_increasing(self):
        numbers = ["1.10", "1.2", "1.0.5", "1.0", "2", "1.0.10", "1.1"]
        ordered = sort_task_numbers(numbers)
        for a, b in zip(ordered, ordered[1:]):
            assert compare_task_numbers(a, b) == -1

    def test_collation_falls_back_for_invalid_values(self):
        assert collate_task_numbers("abc", "abd") == -1
        assert collate_task_numbers("2.0", "10.0") == -1


class TestTaskLevel:
    """Tests for hierarchy depth."""

    def test_levels(self):
        assert task_level("1") == 0
        assert task_level("1.0") == 1
        assert task_level("1.2.3") == 2


class TestHierarchyRule:
    """Tests for the two-branch parent/child numbering rule."""

    def test_extend_branch(self):
        """1.0 -> 1.0.1 adds exactly one component."""
        assert extends_parent("1.0.1", "1.0") is True
        assert is_valid_hierarchy("1.0.1", "1.0") is True

    def test_extend_by_two_components_rejected(self):
        assert extends_parent("1.0.1.1", "1.0") is False
        assert is_valid_hierarchy("1.0.1.1", "1.0") is False

    def test_extend_requires_parent_prefix(self):
        assert is_valid_hierarchy("2.0.1", "1.0") is False

    def test_follow_branch(self):
        """1.0 -> 1.1 keeps the prefix with a larger last component."""
        assert follows_parent("1.1", "1.0") is True
        assert is_valid_hierarchy("1.1", "1.0") is True

    def test_follow_compares_numerically(self):
        assert is_valid_hierarchy("1.10", "1.9") is True

    def test_follow_requires_larger_component(self):
        assert is_valid_hierarchy("1.0", "1.1") is False
        assert is_valid_hierarchy("1.1", "1.1") is False

    def test_follow_requires_same_prefix(self):
        assert is_valid_hierarchy("2.1", "1.0") is False

    def test_shorter_child_rejected(self):
        assert is_valid_hierarchy("1", "1.0") is False

    def test_no_parent_is_valid(self):
        assert is_valid_hierarchy("5.0", None) is True

    def test_invalid_numbers_rejected(self):
        assert is_valid_hierarchy("1.x", "1.0") is False
