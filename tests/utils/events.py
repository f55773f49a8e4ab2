from __future__ import annotations

import threading
import time

from cronherd.events import TaskEvent


class EventRecorder:
    """Subscriber collecting every event it receives."""

    def __init__(self) -> None:
        self.events: list[TaskEvent] = []
        self._cond = threading.Condition()

    def __call__(self, event: TaskEvent) -> None:
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def names(self, task_id: str | None = None) -> list[str]:
        with self._cond:
            return [e.name for e in self.events if task_id is None or e.task_id == task_id]

    def wait_for(self, name: str, task_id: str | None = None, count: int = 1, timeout: float = 5.0) -> list[TaskEvent]:
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                matches = [
                    e
                    for e in self.events
                    if e.name == name and (task_id is None or e.task_id == task_id)
                ]
                if len(matches) >= count:
                    return matches
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AssertionError(
                        f"timed out waiting for {count}x {name}; got {[e.name for e in self.events]}"
                    )
                self._cond.wait(timeout=remaining)
