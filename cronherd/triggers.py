"""Per-task cron triggers backed by APScheduler jobs."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, tzinfo
from typing import Any, Callable
from uuid import uuid4

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

from .expressions import parse_expression

logger = logging.getLogger(__name__)

JOB_PREFIX = "cronherd:"


class CronTriggerHandle:
    """Live trigger owned by exactly one task record.

    ``start`` registers an APScheduler job that calls ``callback`` whenever
    the wall clock, read in ``timezone``, matches ``expression``.  ``stop``
    removes the job; once it returns no further tick reaches ``callback``,
    although an invocation already running is left to finish.
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        task_id: str,
        expression: str,
        timezone: str | tzinfo,
        callback: Callable[[], Any],
        *,
        misfire_grace_time: int = 1,
    ) -> None:
        self._scheduler = scheduler
        self.task_id = task_id
        self.expression = expression
        self.timezone = timezone
        self._callback = callback
        self._misfire_grace_time = misfire_grace_time
        self._lock = threading.Lock()
        self._job: Any = None
        self._job_id = f"{JOB_PREFIX}{task_id}:{uuid4().hex}"
        self._active = False

    @property
    def job_id(self) -> str:
        """APScheduler job id, unique to this handle."""

        return self._job_id

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        trigger = parse_expression(self.expression, self.timezone)
        with self._lock:
            if self._active:
                return
            self._job = self._scheduler.add_job(
                self._fire,
                trigger=trigger,
                id=self.job_id,
                name=self.task_id,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=self._misfire_grace_time,
            )
            self._active = True
        logger.debug("Trigger for %s started: %s", self.task_id, self.expression)

    def stop(self) -> bool:
        """Stop the trigger; return ``False`` if it was already stopped."""

        with self._lock:
            if not self._active:
                return False
            self._active = False
            self._job = None
        try:
            self._scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass
        logger.debug("Trigger for %s stopped", self.task_id)
        return True

    def next_fire_time(self) -> datetime | None:
        """Next fire time as tracked by APScheduler, if the scheduler is running."""

        job = self._job
        if job is None:
            return None
        return getattr(job, "next_run_time", None)

    def fire(self) -> None:
        """Deliver one tick, as the background scheduler would."""

        self._fire()

    def _fire(self) -> None:
        if not self._active:
            return
        self._callback()


__all__ = ["CronTriggerHandle", "JOB_PREFIX"]
