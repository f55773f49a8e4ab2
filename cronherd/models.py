"""Data model for scheduled tasks."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, Mapping, TypeVar

from .errors import SchedulerError

if TYPE_CHECKING:  # pragma: no cover - used for type hints only
    from .triggers import CronTriggerHandle


T = TypeVar("T")

DEFAULT_TIMEZONE = "UTC"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Lifecycle status of a task.

    ``completed`` and ``failed`` are resting states: the task stays eligible
    for its next trigger.  ``cancelled`` stops automatic firing for good.
    """

    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TaskOptions:
    """Per-task options; unknown keys are kept in ``extra`` and echoed back."""

    timezone: str = DEFAULT_TIMEZONE
    run_on_start: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any] | TaskOptions | None,
        *,
        default_timezone: str = DEFAULT_TIMEZONE,
    ) -> TaskOptions:
        if isinstance(data, TaskOptions):
            return data
        values = dict(data or {})
        tz = values.pop("timezone", None) or default_timezone
        run_on_start = bool(values.pop("run_on_start", False))
        extra = values.pop("extra", None) or {}
        extra = {**dict(extra), **values}
        return cls(timezone=str(tz), run_on_start=run_on_start, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.extra,
            "timezone": self.timezone,
            "run_on_start": self.run_on_start,
        }


@dataclass(frozen=True)
class TaskView:
    """Read-only snapshot of a :class:`Task`."""

    id: str
    schedule: str
    status: TaskStatus
    created: datetime
    last_run: datetime | None
    next_run: datetime | None
    last_result: Any
    last_error: str | None
    options: dict[str, Any]
    runs: int
    errors: int

    def to_dict(self) -> dict[str, Any]:
        def _iso(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        return {
            "id": self.id,
            "schedule": self.schedule,
            "status": self.status.value,
            "created": _iso(self.created),
            "last_run": _iso(self.last_run),
            "next_run": _iso(self.next_run),
            "last_result": self.last_result,
            "last_error": self.last_error,
            "options": dict(self.options),
            "stats": {"runs": self.runs, "errors": self.errors},
        }


@dataclass(eq=False)
class Task:
    """Registry record for a scheduled handler.

    ``lock`` guards the mutable fields so snapshots never observe a torn
    status/stats tuple.  ``run_lock`` is held for the whole duration of one
    handler invocation.
    """

    id: str
    schedule: str
    handler: Callable[[], Any]
    options: TaskOptions
    status: TaskStatus = TaskStatus.SCHEDULED
    created: datetime = field(default_factory=utc_now)
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_result: Any = None
    last_error: str | None = None
    runs: int = 0
    errors: int = 0
    trigger: CronTriggerHandle | None = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    run_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def timezone(self) -> str:
        return self.options.timezone

    @property
    def is_active(self) -> bool:
        return self.trigger is not None and self.trigger.active

    def snapshot(self) -> TaskView:
        with self.lock:
            return TaskView(
                id=self.id,
                schedule=self.schedule,
                status=self.status,
                created=self.created,
                last_run=self.last_run,
                next_run=self.next_run,
                last_result=self.last_result,
                last_error=self.last_error,
                options=self.options.to_dict(),
                runs=self.runs,
                errors=self.errors,
            )


class ServiceStats:
    """Service-wide counters shared by every task."""

    FIELDS = ("scheduled", "running", "completed", "failed", "cancelled")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = {name: 0 for name in self.FIELDS}

    def incr(self, name: str, delta: int = 1) -> None:
        with self._lock:
            self._counts[name] += delta

    def transition(self, **deltas: int) -> None:
        """Apply several counter changes atomically."""

        with self._lock:
            for name, delta in deltas.items():
                self._counts[name] += delta

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a scheduler operation: either ``data`` or an ``error``."""

    ok: bool
    data: T | None = None
    error: SchedulerError | None = None

    @classmethod
    def success(cls, data: T | None = None) -> OperationResult[T]:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: SchedulerError) -> OperationResult[T]:
        return cls(ok=False, error=error)

    def unwrap(self) -> T | None:
        """Return ``data`` or raise the recorded error."""

        if not self.ok:
            assert self.error is not None
            raise self.error
        return self.data

    def __bool__(self) -> bool:
        return self.ok


__all__ = [
    "DEFAULT_TIMEZONE",
    "TaskStatus",
    "TaskOptions",
    "TaskView",
    "Task",
    "ServiceStats",
    "OperationResult",
    "utc_now",
]
