"""Task scheduling service.

:class:`TaskScheduler` ties the registry, the per-task cron triggers, the
execution engine and the event notifier together and exposes the
programmatic surface used by the CLI and the HTTP API.  Every operation
returns an :class:`~cronherd.models.OperationResult`; scheduler errors are
reported through it instead of being raised.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler

from .. import metrics
from ..errors import (
    InvalidScheduleExpression,
    InvalidTaskDefinition,
    SchedulerError,
    TaskNotFound,
)
from ..events import (
    TASK_CANCELLED,
    TASK_DELETED,
    TASK_SCHEDULED,
    EventNotifier,
    Subscriber,
)
from ..expressions import is_valid_timezone, next_run, resolve_timezone, validate
from ..models import (
    DEFAULT_TIMEZONE,
    OperationResult,
    ServiceStats,
    Task,
    TaskOptions,
    TaskStatus,
    TaskView,
)
from ..registry import DEFAULT_MAX_TASKS, TaskRegistry
from ..triggers import CronTriggerHandle
from .execution import SOURCE_MANUAL, SOURCE_STARTUP, SOURCE_TRIGGER, ExecutionEngine

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Registry of cron-driven tasks with per-task triggers.

    Parameters
    ----------
    max_tasks:
        Ceiling on the number of registered tasks.
    timezone:
        Timezone applied to tasks whose options do not name one.
    notifier:
        Optional :class:`~cronherd.events.EventNotifier`; a private one is
        created otherwise.
    misfire_grace_time:
        Seconds a tick may run late before APScheduler drops it.
    """

    def __init__(
        self,
        *,
        max_tasks: int = DEFAULT_MAX_TASKS,
        timezone: str = DEFAULT_TIMEZONE,
        notifier: EventNotifier | None = None,
        misfire_grace_time: int = 1,
    ) -> None:
        self.default_timezone = timezone
        self.registry = TaskRegistry(max_tasks)
        self.stats = ServiceStats()
        self.notifier = notifier or EventNotifier()
        self._misfire_grace_time = misfire_grace_time
        self.scheduler = BackgroundScheduler(
            timezone=resolve_timezone(timezone),
            executors={"default": ThreadPoolExecutor(max_workers=self.registry.max_tasks)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": misfire_grace_time,
            },
        )
        self.engine = ExecutionEngine(self.registry, self.notifier, self.stats)

    @property
    def max_tasks(self) -> int:
        return self.registry.max_tasks

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)

    # ------------------------------------------------------------------
    # Service lifecycle
    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started with %d task(s)", len(self.registry))

    def shutdown(self, wait: bool = True) -> None:
        """Stop every live trigger, the background scheduler and the notifier."""

        for task in self.registry.tasks():
            with task.lock:
                if task.trigger is not None:
                    task.trigger.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
        self.notifier.close()
        logger.info("Scheduler stopped")

    # ------------------------------------------------------------------
    # Mutating operations
    def schedule_task(
        self,
        task_id: str,
        schedule: str,
        handler: Callable[[], Any],
        options: Mapping[str, Any] | TaskOptions | None = None,
    ) -> OperationResult[Dict[str, Any]]:
        """Register ``handler`` to run whenever ``schedule`` matches."""

        try:
            if not isinstance(task_id, str) or not task_id:
                raise InvalidTaskDefinition("task_id must be a non-empty string")
            if not callable(handler):
                raise InvalidTaskDefinition("handler must be callable", task_id=task_id)
            try:
                opts = TaskOptions.from_mapping(
                    options, default_timezone=self.default_timezone
                )
            except (TypeError, ValueError) as exc:
                raise InvalidTaskDefinition(
                    f"options must be a mapping: {exc}", task_id=task_id
                ) from exc

            with self.registry.lock:
                self.registry.check_admission(task_id)
                if not validate(schedule):
                    raise InvalidScheduleExpression(schedule, task_id=task_id)
                if not is_valid_timezone(opts.timezone):
                    raise InvalidScheduleExpression(
                        schedule,
                        task_id=task_id,
                        reason=f"unknown timezone {opts.timezone!r}",
                    )
                expression = " ".join(schedule.split())
                task = Task(id=task_id, schedule=expression, handler=handler, options=opts)
                task.trigger = CronTriggerHandle(
                    self.scheduler,
                    task_id,
                    expression,
                    opts.timezone,
                    functools.partial(self._on_tick, task_id),
                    misfire_grace_time=self._misfire_grace_time,
                )
                task.next_run = next_run(expression, opts.timezone)
                self.registry.add(task)
                task.trigger.start()
        except SchedulerError as exc:
            logger.info("Rejected task %s: %s", task_id, exc)
            return OperationResult.failure(exc)

        self.stats.incr("scheduled")
        metrics.REGISTERED_TASKS.set(len(self.registry))
        logger.info(
            "Scheduled %s with %r (%s), next run %s",
            task_id,
            expression,
            opts.timezone,
            task.next_run,
        )
        self.notifier.publish(
            TASK_SCHEDULED, task_id, schedule=expression, next_run=task.next_run
        )
        if opts.run_on_start:
            self._run_soon(task_id)
        return OperationResult.success({"task_id": task_id, "next_run": task.next_run})

    def run_task(self, task_id: str) -> OperationResult[Dict[str, Any]]:
        """Run ``task_id`` now and wait for the handler to finish."""

        return self.engine.run(task_id, source=SOURCE_MANUAL)

    def cancel_task(self, task_id: str) -> OperationResult[Dict[str, Any]]:
        """Stop automatic firing of ``task_id`` while keeping its record."""

        try:
            task = self.registry.get(task_id)
        except TaskNotFound as exc:
            return OperationResult.failure(exc)

        with task.lock:
            if task.trigger is not None:
                task.trigger.stop()
            task.status = TaskStatus.CANCELLED
            task.next_run = None
        self.stats.incr("cancelled")
        logger.info("Cancelled %s", task_id)
        self.notifier.publish(TASK_CANCELLED, task_id)
        return OperationResult.success({"task_id": task_id})

    def delete_task(self, task_id: str) -> OperationResult[Dict[str, Any]]:
        """Stop ``task_id`` and drop it from the registry."""

        # the trigger stops before the id can be registered again
        with self.registry.lock:
            try:
                task = self.registry.pop(task_id)
            except TaskNotFound as exc:
                return OperationResult.failure(exc)
            with task.lock:
                if task.trigger is not None:
                    task.trigger.stop()
                task.next_run = None
        metrics.REGISTERED_TASKS.set(len(self.registry))
        logger.info("Deleted %s", task_id)
        self.notifier.publish(TASK_DELETED, task_id)
        return OperationResult.success({"task_id": task_id})

    # ------------------------------------------------------------------
    # Queries
    def get_task_info(self, task_id: str) -> OperationResult[TaskView]:
        try:
            task = self.registry.get(task_id)
        except TaskNotFound as exc:
            return OperationResult.failure(exc)
        return OperationResult.success(task.snapshot())

    def list_tasks(self) -> OperationResult[List[TaskView]]:
        return OperationResult.success([task.snapshot() for task in self.registry.tasks()])

    def get_stats(self) -> Dict[str, int]:
        return {
            **self.stats.snapshot(),
            "task_count": len(self.registry),
            "max_tasks": self.registry.max_tasks,
        }

    # ------------------------------------------------------------------
    # Events
    def subscribe(self, event: str, callback: Subscriber) -> Subscriber:
        return self.notifier.subscribe(event, callback)

    def unsubscribe(self, event: str, callback: Subscriber) -> bool:
        return self.notifier.unsubscribe(event, callback)

    # ------------------------------------------------------------------
    # Internal
    def _on_tick(self, task_id: str) -> None:
        result = self.engine.run(task_id, source=SOURCE_TRIGGER)
        if not result.ok and isinstance(result.error, TaskNotFound):
            logger.debug("Tick for removed task %s ignored", task_id)

    def _run_soon(self, task_id: str) -> None:
        """Queue a one-off run of ``task_id`` on the worker pool."""

        self.scheduler.add_job(
            self.engine.run,
            args=[task_id],
            kwargs={"source": SOURCE_STARTUP},
            id=f"cronherd-startup:{task_id}:{uuid4().hex}",
            name=f"{task_id} (startup)",
            misfire_grace_time=None,
        )


# ---------------------------------------------------------------------------
# Default scheduler accessor

_default_scheduler: TaskScheduler | None = None


def set_default_scheduler(scheduler: TaskScheduler | None) -> None:
    """Set the process-wide scheduler used by the CLI and the HTTP API."""

    global _default_scheduler
    _default_scheduler = scheduler


def get_default_scheduler() -> TaskScheduler:
    """Return the configured default scheduler."""

    if _default_scheduler is None:
        raise RuntimeError("Default scheduler has not been initialised")
    return _default_scheduler


def create_scheduler(cfg: Optional[Dict[str, Any]] = None) -> TaskScheduler:
    """Build a :class:`TaskScheduler` from a :func:`~cronherd.config.load_config` mapping."""

    cfg = cfg or {}
    notifier = EventNotifier(max_queue=int(cfg.get("event_queue_size", 0) or 0))
    return TaskScheduler(
        max_tasks=int(cfg.get("max_tasks", DEFAULT_MAX_TASKS)),
        timezone=cfg.get("timezone", DEFAULT_TIMEZONE),
        notifier=notifier,
        misfire_grace_time=int(cfg.get("misfire_grace_time", 1)),
    )


__all__ = [
    "TaskScheduler",
    "ExecutionEngine",
    "set_default_scheduler",
    "get_default_scheduler",
    "create_scheduler",
]
