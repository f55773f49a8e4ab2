"""Prometheus metrics for scheduled task runs."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server
import functools
import time

__all__ = [
    "TASK_LATENCY",
    "TASK_SUCCESS",
    "TASK_FAILURE",
    "REGISTERED_TASKS",
    "RUNNING_TASKS",
    "start_metrics_server",
    "track_task",
]

# Histogram tracking how long each handler takes to run.
TASK_LATENCY = Histogram(
    "task_latency_seconds",
    "Time spent executing task handlers",
    ["task_id"],
)

TASK_SUCCESS = Counter(
    "task_success_total",
    "Total number of handler runs that completed successfully",
    ["task_id"],
)

TASK_FAILURE = Counter(
    "task_failure_total",
    "Total number of handler runs that raised an exception",
    ["task_id"],
)

REGISTERED_TASKS = Gauge(
    "registered_tasks",
    "Number of tasks currently held by the registry",
)

RUNNING_TASKS = Gauge(
    "running_tasks",
    "Number of handler invocations currently in flight",
)


def start_metrics_server(port: int = 8000) -> None:
    """Start an HTTP server to expose Prometheus metrics."""
    start_http_server(port)


def track_task(func=None, *, name: str | None = None):
    """Record latency and outcome of ``func``.

    Usable bare as ``@track_task`` or as ``@track_task(name="nightly")`` to
    label samples with a task id instead of the function name.
    """

    def decorator(func):
        task_id = name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.monotonic()
            RUNNING_TASKS.inc()
            try:
                result = func(*args, **kwargs)
            except BaseException:
                TASK_FAILURE.labels(task_id).inc()
                raise
            else:
                TASK_SUCCESS.labels(task_id).inc()
                return result
            finally:
                RUNNING_TASKS.dec()
                TASK_LATENCY.labels(task_id).observe(time.monotonic() - start_time)

        return wrapper

    if func is None:
        return decorator

    return decorator(func)
