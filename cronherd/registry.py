"""Registry owning the mapping from task id to task record."""

from __future__ import annotations

import threading
from typing import Dict, Iterator, List

from .errors import DuplicateTaskId, TaskLimitExceeded, TaskNotFound
from .models import Task

DEFAULT_MAX_TASKS = 100


class TaskRegistry:
    """Thread-safe ``id -> Task`` map with a capacity ceiling.

    The registry lock only protects membership.  Field updates on a record go
    through the record's own lock so tasks never contend with each other.
    """

    def __init__(self, max_tasks: int = DEFAULT_MAX_TASKS) -> None:
        if int(max_tasks) < 1:
            raise ValueError("max_tasks must be at least 1")
        self._max_tasks = int(max_tasks)
        self._tasks: Dict[str, Task] = {}
        self.lock = threading.RLock()

    @property
    def max_tasks(self) -> int:
        return self._max_tasks

    def check_admission(self, task_id: str) -> None:
        """Raise if a task called ``task_id`` could not be added right now."""

        with self.lock:
            if task_id in self._tasks:
                raise DuplicateTaskId(task_id)
            if len(self._tasks) >= self._max_tasks:
                raise TaskLimitExceeded(self._max_tasks, task_id=task_id)

    def add(self, task: Task) -> None:
        with self.lock:
            self.check_admission(task.id)
            self._tasks[task.id] = task

    def get(self, task_id: str) -> Task:
        with self.lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def pop(self, task_id: str) -> Task:
        with self.lock:
            task = self._tasks.pop(task_id, None)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def tasks(self) -> List[Task]:
        with self.lock:
            return list(self._tasks.values())

    def ids(self) -> List[str]:
        with self.lock:
            return list(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        with self.lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self.lock:
            return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks())


__all__ = ["DEFAULT_MAX_TASKS", "TaskRegistry"]
