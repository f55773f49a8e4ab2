import sys
from pathlib import Path

import pytest

# Ensure package root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from cronherd import scheduler as scheduler_module  # noqa: E402
from cronherd.scheduler import TaskScheduler  # noqa: E402
from tests.utils.events import EventRecorder  # noqa: E402


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "CRONHERD_CONFIG",
        "CRONHERD_MAX_TASKS",
        "CRONHERD_TIMEZONE",
        "CRONHERD_LOG_LEVEL",
        "CRONHERD_TASKS_PATH",
        "CRONHERD_EVENT_QUEUE_SIZE",
        "CRONHERD_MISFIRE_GRACE",
        "CRONHERD_METRICS_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def shutdown_default_scheduler():
    yield
    sched = scheduler_module._default_scheduler
    if sched is not None:
        try:
            sched.shutdown(wait=False)
        except Exception:
            pass
    scheduler_module._default_scheduler = None


@pytest.fixture
def sched():
    scheduler = TaskScheduler(max_tasks=10)
    yield scheduler
    scheduler.shutdown(wait=False)


@pytest.fixture
def running_sched(sched):
    sched.start()
    return sched


@pytest.fixture
def recorder(sched):
    events = EventRecorder()
    sched.subscribe("*", events)
    return events
