"""Error taxonomy for the scheduling service."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for errors reported by :class:`~cronherd.scheduler.TaskScheduler`."""

    code = "scheduler_error"

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, str | None]:
        return {"code": self.code, "message": self.message, "task_id": self.task_id}


class DuplicateTaskId(SchedulerError):
    code = "duplicate_task_id"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task '{task_id}' already exists", task_id=task_id)


class TaskLimitExceeded(SchedulerError):
    code = "task_limit_exceeded"

    def __init__(self, max_tasks: int, *, task_id: str | None = None) -> None:
        super().__init__(
            f"Maximum number of tasks ({max_tasks}) reached", task_id=task_id
        )
        self.max_tasks = max_tasks


class InvalidScheduleExpression(SchedulerError):
    code = "invalid_schedule_expression"

    def __init__(
        self, expression: str, *, task_id: str | None = None, reason: str | None = None
    ) -> None:
        detail = f"Invalid schedule expression: {expression!r}"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(detail, task_id=task_id)
        self.expression = expression


class InvalidTaskDefinition(SchedulerError):
    """The task id or handler cannot be registered."""

    code = "invalid_task_definition"


class TaskNotFound(SchedulerError):
    code = "task_not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Unknown task: {task_id}", task_id=task_id)


class HandlerExecutionError(SchedulerError):
    """Raised on behalf of a handler that failed; the original is kept as ``__cause__``."""

    code = "handler_execution_error"

    def __init__(self, task_id: str, original: BaseException) -> None:
        super().__init__(f"{type(original).__name__}: {original}", task_id=task_id)
        self.original = original
        self.__cause__ = original


__all__ = [
    "SchedulerError",
    "DuplicateTaskId",
    "TaskLimitExceeded",
    "InvalidScheduleExpression",
    "TaskNotFound",
    "InvalidTaskDefinition",
    "HandlerExecutionError",
]
