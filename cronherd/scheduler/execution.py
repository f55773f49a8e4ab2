"""Execution engine: one handler invocation and the state changes around it."""

from __future__ import annotations

import logging
from typing import Any, Dict

from .. import metrics
from ..async_utils import call_handler
from ..errors import HandlerExecutionError, TaskNotFound
from ..events import TASK_COMPLETED, TASK_FAILED, TASK_RUNNING, EventNotifier
from ..expressions import next_run
from ..models import OperationResult, ServiceStats, Task, TaskStatus, utc_now
from ..registry import TaskRegistry

logger = logging.getLogger(__name__)

SOURCE_MANUAL = "manual"
SOURCE_TRIGGER = "trigger"
SOURCE_STARTUP = "startup"


class ExecutionEngine:
    """Run task handlers and record their outcome.

    Executions of one task never overlap.  A trigger tick arriving while the
    previous invocation is still in flight is skipped; manual runs wait for
    it and then run.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        notifier: EventNotifier,
        stats: ServiceStats,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._stats = stats

    def run(self, task_id: str, *, source: str = SOURCE_MANUAL) -> OperationResult[Dict[str, Any]]:
        try:
            task = self._registry.get(task_id)
        except TaskNotFound as exc:
            return OperationResult.failure(exc)

        if source == SOURCE_TRIGGER:
            if not task.run_lock.acquire(blocking=False):
                logger.warning("Skipping tick for %s: previous run still in flight", task_id)
                return OperationResult.success({"task_id": task_id, "skipped": True})
        else:
            task.run_lock.acquire()
        try:
            return self._execute(task, source)
        finally:
            task.run_lock.release()

    def _execute(self, task: Task, source: str) -> OperationResult[Dict[str, Any]]:
        with task.lock:
            if source == SOURCE_TRIGGER and not task.is_active:
                return OperationResult.success({"task_id": task.id, "skipped": True})
            task.status = TaskStatus.RUNNING
            task.last_run = utc_now()

        self._stats.incr("running")
        self._notifier.publish(TASK_RUNNING, task.id, source=source)
        logger.debug("Running %s (%s)", task.id, source)

        try:
            value = metrics.track_task(call_handler, name=task.id)(task.handler)
        except BaseException as exc:
            # interpreter exits are recorded like any failure, then re-raised
            error = HandlerExecutionError(task.id, exc)
            logger.error("Task %s failed: %s", task.id, error, exc_info=exc)
            with task.lock:
                task.errors += 1
                task.last_error = error.message
                upcoming = self._settle(task, TaskStatus.FAILED)
            self._stats.transition(running=-1, failed=1)
            self._notifier.publish(
                TASK_FAILED,
                task.id,
                error=error.message,
                next_run=upcoming,
                source=source,
            )
            if isinstance(exc, (KeyboardInterrupt, SystemExit)):
                raise
            return OperationResult.failure(error)

        with task.lock:
            task.runs += 1
            task.last_result = value
            task.last_error = None
            upcoming = self._settle(task, TaskStatus.COMPLETED)
        self._stats.transition(running=-1, completed=1)
        self._notifier.publish(
            TASK_COMPLETED,
            task.id,
            result=value,
            next_run=upcoming,
            source=source,
        )
        return OperationResult.success({"task_id": task.id, "result": value})

    @staticmethod
    def _settle(task: Task, outcome: TaskStatus):
        """Move ``task`` to its resting state; the caller holds ``task.lock``."""

        if task.is_active:
            task.status = outcome
            task.next_run = next_run(task.schedule, task.timezone)
        else:
            task.status = TaskStatus.CANCELLED
            task.next_run = None
        return task.next_run


__all__ = ["ExecutionEngine", "SOURCE_MANUAL", "SOURCE_TRIGGER", "SOURCE_STARTUP"]
