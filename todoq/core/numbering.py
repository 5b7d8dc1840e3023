"""Hierarchical task numbers.

Task numbers are dotted decimals ("1.0", "1.2.3"). Components compare as
integers, so "2.0" < "10.0" and "1.2" < "1.10". A number that is a strict
prefix of another sorts first. Leading zeros do not change the numeric value;
the original string is kept for display and breaks ties.
"""

import re
from typing import Optional

TASK_NUMBER_PATTERN = re.compile(r"^\d+(\.\d+)*$")

# Name of the SQLite collation registered by Database
COLLATION_NAME = "TASK_NUMBER"


def is_valid_task_number(task_number: str) -> bool:
    """Check that a string is a syntactically valid task number."""
    return isinstance(task_number, str) and TASK_NUMBER_PATTERN.match(task_number) is not None


def parse_task_number(task_number: str) -> tuple[int, ...]:
    """Split a task number into integer components.

    Raises:
        ValueError: If the number is not valid
    """
    if not is_valid_task_number(task_number):
        raise ValueError(f"Invalid task number: {task_number!r}")
    return tuple(int(part) for part in task_number.split("."))


def task_number_key(task_number: str) -> tuple[tuple[int, ...], str]:
    """Sort key implementing numeric ordering of task numbers.

    Tuples already compare element-wise with a shorter prefix first; the raw
    string makes "1.01" and "1.1" order deterministically.
    """
    return parse_task_number(task_number), task_number


def compare_task_numbers(a: str, b: str) -> int:
    """Three-way comparison of two task numbers (-1, 0, 1)."""
    key_a = task_number_key(a)
    key_b = task_number_key(b)
    if key_a < key_b:
        return -1
    if key_a > key_b:
        return 1
    return 0


def collate_task_numbers(a: str, b: str) -> int:
    """SQLite collation callback.

    Rows holding malformed numbers (never written by todoq) fall back to
    plain string comparison instead of aborting the query.
    """
    if is_valid_task_number(a) and is_valid_task_number(b):
        return compare_task_numbers(a, b)
    return (a > b) - (a < b)


def sort_task_numbers(task_numbers: list[str]) -> list[str]:
    """Return task numbers in numeric order."""
    return sorted(task_numbers, key=task_number_key)


def task_level(task_number: str) -> int:
    """Hierarchy depth: number of components minus one."""
    return len(task_number.split(".")) - 1


def extends_parent(task_number: str, parent_number: str) -> bool:
    """Child adds exactly one component to the parent (1.0 -> 1.0.1)."""
    child = parse_task_number(task_number)
    parent = parse_task_number(parent_number)
    return len(child) == len(parent) + 1 and child[:-1] == parent


def follows_parent(task_number: str, parent_number: str) -> bool:
    """Child shares the parent's prefix at the same depth with a larger last component (1.0 -> 1.1)."""
    child = parse_task_number(task_number)
    parent = parse_task_number(parent_number)
    return len(child) == len(parent) and child[:-1] == parent[:-1] and child[-1] > parent[-1]


def is_valid_hierarchy(task_number: str, parent_number: Optional[str]) -> bool:
    """Check the flexible parent/child numbering rule.

    A task without a parent is always valid. Otherwise the child must either
    extend the parent's number or numerically follow it at the same depth.
    """
    if parent_number is None:
        return True
    if not (is_valid_task_number(task_number) and is_valid_task_number(parent_number)):
        return False
    if extends_parent(task_number, parent_number):
        return True
    if follows_parent(task_number, parent_number):
        return True
    return False
