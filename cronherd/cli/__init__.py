"""Command-line interface for cronherd.

``validate`` and ``next`` inspect cron expressions, ``run`` executes the
tasks of a YAML file in the foreground and ``serve`` exposes the scheduler
over HTTP.
"""

from __future__ import annotations

import click  # noqa: F401 - re-exported for CLI extensions

import importlib
import logging
import threading
from datetime import datetime
from typing import Any

import typer

from ..config import load_config
from ..events import WILDCARD, TaskEvent
from ..expressions import is_valid_timezone, iter_next_runs, validate
from ..handlers import load_tasks_file
from ..metrics import start_metrics_server
from ..scheduler import TaskScheduler, create_scheduler, set_default_scheduler
from ..transport import BaseTransport, get_client

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help="Schedule and inspect cron-driven tasks")

_transport_client: BaseTransport | None = None


@app.callback()
def _global_options(
    metrics_port: int | None = typer.Option(
        None,
        "--metrics-port",
        help="Expose Prometheus metrics on PORT before executing the command",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to the configured log_level)",
    ),
    transport: str | None = typer.Option(
        None,
        "--transport",
        help="Forward lifecycle events through a transport [grpc|nats]",
    ),
    grpc_stub: str | None = typer.Option(
        None,
        "--grpc-stub",
        help="Dotted path to a gRPC stub instance (module:attr)",
    ),
    grpc_method: str = typer.Option(
        "Send",
        "--grpc-method",
        help="Method name for gRPC emission",
    ),
    nats_conn: str | None = typer.Option(
        None,
        "--nats-conn",
        help="Dotted path to a NATS connection object (module:attr)",
    ),
    nats_subject: str = typer.Option(
        "cronherd.events",
        "--nats-subject",
        help="Subject for NATS messages",
    ),
) -> None:
    """Handle global options for the CLI."""

    global _transport_client

    level = (log_level or load_config().get("log_level", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)

    if metrics_port is not None:
        start_metrics_server(metrics_port)

    _transport_client = None
    if transport:
        def _load(path: str) -> Any:
            module, attr = path.split(":")
            mod = importlib.import_module(module)
            return getattr(mod, attr)

        if transport == "grpc":
            if grpc_stub is None:
                raise typer.BadParameter("--grpc-stub is required for grpc transport")
            _transport_client = get_client("grpc", stub=_load(grpc_stub), method=grpc_method)
        elif transport == "nats":
            if nats_conn is None:
                raise typer.BadParameter("--nats-conn is required for nats transport")
            _transport_client = get_client(
                "nats", connection=_load(nats_conn), subject=nats_subject
            )
        else:
            raise typer.BadParameter(f"Unknown transport: {transport}")


def _build_scheduler() -> TaskScheduler:
    sched = create_scheduler(load_config())
    if _transport_client is not None:
        sched.notifier.configure_transport(_transport_client)
    set_default_scheduler(sched)
    return sched


def _load_file(sched: TaskScheduler, tasks_file: str) -> None:
    try:
        results = load_tasks_file(sched, tasks_file)
    except Exception as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    for result in results:
        if result.ok:
            data = result.data or {}
            typer.echo(f"{data['task_id']}\tscheduled\tnext run {data['next_run']}")
        else:
            typer.echo(f"error: {result.error}", err=True)


def _echo_event(event: TaskEvent) -> None:
    details = " ".join(
        f"{key}={value}" for key, value in event.context.items() if value is not None
    )
    typer.echo(f"{event.timestamp.isoformat()}\t{event.name}\t{event.task_id}\t{details}".rstrip())


@app.command("validate")
def validate_expression(expression: str) -> None:
    """Check that ``EXPRESSION`` is a valid cron expression."""

    if validate(expression):
        typer.echo(f"valid: {expression}")
        return
    typer.echo(f"invalid: {expression}", err=True)
    raise typer.Exit(code=1)


@app.command("next")
def next_runs(
    expression: str,
    timezone: str = typer.Option("UTC", "--timezone", "-z", help="IANA timezone"),
    count: int = typer.Option(5, "--count", "-n", min=1, help="Number of fire times"),
    start: datetime | None = typer.Option(
        None, "--from", help="Reference time (defaults to now, naive values are UTC)"
    ),
) -> None:
    """Print the next fire times of ``EXPRESSION``."""

    if not validate(expression):
        typer.echo(f"error: invalid expression {expression!r}", err=True)
        raise typer.Exit(code=1)
    if not is_valid_timezone(timezone):
        typer.echo(f"error: unknown timezone {timezone!r}", err=True)
        raise typer.Exit(code=1)
    for fire_time in iter_next_runs(expression, timezone, start, count):
        typer.echo(fire_time.isoformat())


@app.command("run")
def run_tasks(
    tasks_file: str,
    duration: float | None = typer.Option(
        None, "--duration", help="Stop after SECONDS instead of waiting for Ctrl-C"
    ),
) -> None:
    """Schedule the tasks in ``TASKS_FILE`` and run them in the foreground."""

    sched = _build_scheduler()
    sched.subscribe(WILDCARD, _echo_event)
    stop = threading.Event()
    try:
        _load_file(sched, tasks_file)
        sched.start()
        stop.wait(timeout=duration)
    except KeyboardInterrupt:  # pragma: no cover - interactive
        pass
    finally:
        sched.shutdown(wait=False)
        set_default_scheduler(None)
    typer.echo("scheduler stopped")


@app.command("serve")
def serve(
    tasks_file: str | None = typer.Option(None, "--tasks", help="YAML file of tasks to load"),
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to bind"),
) -> None:
    """Run the scheduler behind the HTTP API."""

    import uvicorn

    from ..api import app as api_app

    sched = _build_scheduler()
    tasks_file = tasks_file or load_config().get("tasks_path")
    try:
        if tasks_file:
            _load_file(sched, tasks_file)
        sched.start()
        uvicorn.run(api_app, host=host, port=port)
    finally:
        sched.shutdown(wait=False)
        set_default_scheduler(None)


def main(args: list[str] | None = None) -> None:
    """CLI entry point used by ``console_scripts`` or directly.

    Parameters
    ----------
    args:
        Optional list of CLI arguments. ``None`` (default) reads
        ``sys.argv``.
    """

    app(args, standalone_mode=False)


__all__ = ["app", "main", "validate_expression", "next_runs", "run_tasks", "serve"]
