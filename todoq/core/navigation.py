"""Read-only navigation over the task store.

Every query returns tasks in numeric task-number order.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from todoq.core.errors import TaskNotFoundError
from todoq.core.models import Task, TaskHierarchyNode
from todoq.core.state_machine import OPEN_STATUSES, TaskStatus

if TYPE_CHECKING:
    from todoq.persistence.database import Database

logger = logging.getLogger(__name__)


class NavigationService:
    """Answers "where am I" questions without mutating anything."""

    def __init__(self, database: "Database"):
        self.db = database

    @property
    def repo(self):
        return self.db.tasks

    def get_current_task(self) -> Optional[Task]:
        """First pending or in-progress task, or None when nothing is open."""
        return self.repo.first_with_status_after(OPEN_STATUSES)

    def get_next_task(self, after_number: Optional[str] = None) -> Optional[Task]:
        """First open task strictly after a number.

        Without a number the current task is the starting point, so the
        result is the open task following it (None when nothing is open).
        """
        if after_number is None:
            current = self.get_current_task()
            if current is None:
                return None
            after_number = current.task_number
        return self.repo.first_with_status_after(OPEN_STATUSES, after_number)

    def get_previous_task(self, before_number: Optional[str] = None) -> Optional[Task]:
        """Last task strictly before a number, whatever its status."""
        if before_number is None:
            return None
        return self.repo.last_before(before_number)

    def get_remaining_task_count(self) -> int:
        return len(self.repo.list_by_statuses(OPEN_STATUSES))

    def get_tasks_by_status(self) -> Dict[TaskStatus, List[Task]]:
        """All tasks bucketed by status; every status has a (maybe empty) list."""
        buckets: Dict[TaskStatus, List[Task]] = {status: [] for status in TaskStatus}
        for task in self.repo.list_tasks():
            buckets[task.status].append(task)
        return buckets

    def get_task_hierarchy(self, root_number: Optional[str] = None) -> List[TaskHierarchyNode]:
        """Nest tasks under their parents.

        Args:
            root_number: Only return the subtree rooted here; the root is
                level 0 in the result

        Returns:
            Top-level nodes, children nested in numeric order

        Raises:
            TaskNotFoundError: If root_number does not exist
        """
        tasks = self.repo.list_tasks()
        children_of: Dict[Optional[int], List[Task]] = {}
        for task in tasks:
            children_of.setdefault(task.parent_id, []).append(task)

        if root_number is None:
            top = children_of.get(None, [])
        else:
            top = [task for task in tasks if task.task_number == root_number]
            if not top:
                raise TaskNotFoundError(root_number)

        roots = [TaskHierarchyNode(task=task, level=0) for task in top]
        stack = list(roots)
        while stack:
            node = stack.pop()
            for child in children_of.get(node.task.id, []):
                child_node = TaskHierarchyNode(task=child, level=node.level + 1)
                node.children.append(child_node)
                stack.append(child_node)
        return roots

    def search_tasks(self, query: str) -> List[Task]:
        """Case-insensitive substring search over number, name and description.

        An empty query matches every task.
        """
        return self.repo.search(query)

    def get_task_dependencies(self, task_number: str) -> List[Task]:
        """Tasks the given task waits on.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        return self.repo.dependencies_of(self._require_id(task_number))

    def get_dependent_tasks(self, task_number: str) -> List[Task]:
        """Tasks waiting on the given task.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        return self.repo.dependents_of(self._require_id(task_number))

    def _require_id(self, task_number: str) -> int:
        task_id = self.repo.get_id(task_number)
        if task_id is None:
            raise TaskNotFoundError(task_number)
        return task_id
