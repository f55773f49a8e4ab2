"""cronherd package root.

A registry of named, cron-driven tasks with per-task triggers, run
statistics and lifecycle events.
"""

from .scheduler import (
    TaskScheduler,
    create_scheduler,
    get_default_scheduler,
    set_default_scheduler,
)
from . import metrics  # noqa: F401
from .config import load_config
from .errors import (
    DuplicateTaskId,
    HandlerExecutionError,
    InvalidScheduleExpression,
    InvalidTaskDefinition,
    SchedulerError,
    TaskLimitExceeded,
    TaskNotFound,
)
from .expressions import next_run, validate
from .handlers import load_tasks_file
from .models import OperationResult, TaskOptions, TaskStatus, TaskView


def initialize(path: str | None = None) -> TaskScheduler:
    """Create, populate and start the default scheduler.

    ``path`` points to a YAML configuration file; see
    :func:`~cronherd.config.load_config`.  When the configuration names a
    ``tasks_path`` its tasks are scheduled before the scheduler starts.
    """

    cfg = load_config(path)
    sched = create_scheduler(cfg)
    set_default_scheduler(sched)
    if cfg.get("tasks_path"):
        load_tasks_file(sched, cfg["tasks_path"])
    if cfg.get("metrics_port"):
        metrics.start_metrics_server(cfg["metrics_port"])
    sched.start()
    return sched


__all__ = [
    "TaskScheduler",
    "create_scheduler",
    "get_default_scheduler",
    "set_default_scheduler",
    "initialize",
    "load_config",
    "load_tasks_file",
    "validate",
    "next_run",
    "OperationResult",
    "TaskOptions",
    "TaskStatus",
    "TaskView",
    "SchedulerError",
    "DuplicateTaskId",
    "TaskLimitExceeded",
    "InvalidScheduleExpression",
    "InvalidTaskDefinition",
    "TaskNotFound",
    "HandlerExecutionError",
    "metrics",
]
