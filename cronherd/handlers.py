"""Resolve task handlers and load task definitions from YAML."""

from __future__ import annotations

import importlib
import inspect
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List

import yaml

if TYPE_CHECKING:  # pragma: no cover - used for type hints only
    from .models import OperationResult
    from .scheduler import TaskScheduler


def load_handler(path: str) -> Callable[[], Any]:
    """Load ``path`` of the form ``module:attr`` and return a callable.

    Classes are instantiated and their ``run`` method is returned, so task
    classes with a ``run()`` method can be scheduled directly.
    """

    module_path, sep, attr_path = path.partition(":")
    if not sep or not module_path or not attr_path:
        raise ValueError(f"Handler path must look like 'module:attr', got {path!r}")
    target: Any = importlib.import_module(module_path)
    for attr in attr_path.split("."):
        target = getattr(target, attr)
    if inspect.isclass(target):
        instance = target()
        run = getattr(instance, "run", None)
        if not callable(run):
            raise TypeError(f"{path}: class has no run() method")
        return run
    if not callable(target):
        raise TypeError(f"{path}: object is not callable")
    return target


def _parse_entry(task_id: str, entry: Any) -> Dict[str, Any]:
    if not isinstance(entry, dict):
        raise ValueError(f"{task_id}: entry must be a mapping")
    info = dict(entry)
    expr = info.pop("expr", None)
    if not isinstance(expr, str) or not expr.strip():
        raise ValueError(f"{task_id}: 'expr' must be a non-empty string")
    handler = info.pop("handler", None)
    if not isinstance(handler, str) or not handler:
        raise ValueError(f"{task_id}: 'handler' must be a 'module:attr' string")
    return {"expr": expr, "handler": handler, "options": info}


def load_tasks_file(
    scheduler: TaskScheduler,
    path: str | Path,
    handlers: Dict[str, Callable[[], Any]] | None = None,
) -> List[OperationResult]:
    """Schedule every task described in the YAML file at ``path``.

    The file maps task ids to entries with an ``expr`` cron expression and a
    ``handler`` import path.  Other keys (``timezone``, ``run_on_start`` and
    any custom fields) become task options.  ``handlers`` may map handler
    paths to callables that should be used instead of importing them.

    The whole file is validated before anything is scheduled.
    """

    data = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of task ids")

    parsed = {str(task_id): _parse_entry(str(task_id), entry) for task_id, entry in data.items()}
    resolved: Dict[str, Callable[[], Any]] = {}
    for task_id, info in parsed.items():
        override = (handlers or {}).get(info["handler"])
        resolved[task_id] = override or load_handler(info["handler"])

    return [
        scheduler.schedule_task(task_id, info["expr"], resolved[task_id], info["options"])
        for task_id, info in parsed.items()
    ]


__all__ = ["load_handler", "load_tasks_file"]
