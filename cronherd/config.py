"""Configuration helpers for cronherd."""

from __future__ import annotations

import os
from typing import Any, Dict

import yaml

from .registry import DEFAULT_MAX_TASKS


def _int_setting(cfg: Dict[str, Any], key: str, env: str, default: int) -> int:
    raw = os.getenv(env, cfg.get(key, default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load configuration from ``path`` or the ``CRONHERD_CONFIG`` env var.

    Recognised keys are ``max_tasks``, ``timezone`` (the default for tasks
    that do not set one), ``log_level``, ``tasks_path``,
    ``event_queue_size``, ``misfire_grace_time`` and ``metrics_port``.  Each
    can be overridden by a ``CRONHERD_*`` environment variable, which takes
    precedence over the YAML file.
    """

    cfg: Dict[str, Any] = {}
    path = path or os.getenv("CRONHERD_CONFIG")
    if path and os.path.exists(path):
        with open(path, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        if not isinstance(cfg, dict):
            raise ValueError(f"{path}: configuration must be a mapping")

    cfg["max_tasks"] = _int_setting(cfg, "max_tasks", "CRONHERD_MAX_TASKS", DEFAULT_MAX_TASKS)
    if cfg["max_tasks"] < 1:
        raise ValueError("max_tasks must be at least 1")

    cfg["timezone"] = os.getenv("CRONHERD_TIMEZONE", cfg.get("timezone", "UTC"))
    cfg["log_level"] = str(
        os.getenv("CRONHERD_LOG_LEVEL", cfg.get("log_level", "INFO"))
    ).upper()

    cfg["event_queue_size"] = _int_setting(
        cfg, "event_queue_size", "CRONHERD_EVENT_QUEUE_SIZE", 0
    )
    cfg["misfire_grace_time"] = _int_setting(
        cfg, "misfire_grace_time", "CRONHERD_MISFIRE_GRACE", 1
    )

    if "CRONHERD_TASKS_PATH" in os.environ:
        cfg["tasks_path"] = os.environ["CRONHERD_TASKS_PATH"]
    else:
        cfg.setdefault("tasks_path", None)

    if "CRONHERD_METRICS_PORT" in os.environ or cfg.get("metrics_port") is not None:
        cfg["metrics_port"] = _int_setting(cfg, "metrics_port", "CRONHERD_METRICS_PORT", 0)
    else:
        cfg["metrics_port"] = None

    return cfg
