"""HTTP API over the default :class:`~cronherd.scheduler.TaskScheduler`."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from ..errors import (
    DuplicateTaskId,
    HandlerExecutionError,
    InvalidScheduleExpression,
    InvalidTaskDefinition,
    SchedulerError,
    TaskLimitExceeded,
    TaskNotFound,
)
from ..expressions import is_valid_timezone, next_run, validate
from ..handlers import load_handler
from ..models import OperationResult, TaskView
from ..scheduler import get_default_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="cronherd")

_STATUS_CODES = {
    TaskNotFound: 404,
    DuplicateTaskId: 409,
    TaskLimitExceeded: 429,
    InvalidScheduleExpression: 400,
    InvalidTaskDefinition: 400,
    HandlerExecutionError: 500,
}


class ScheduleRequest(BaseModel):
    """Schema for registering a task over HTTP."""

    task_id: str = Field(min_length=1)
    schedule: str
    handler: str = Field(description="Import path of the handler, 'module:attr'")
    timezone: str | None = None
    run_on_start: bool = False
    options: Dict[str, Any] = Field(default_factory=dict)


def _jsonable(value: Any) -> Any:
    try:
        return jsonable_encoder(value)
    except (TypeError, ValueError):
        return repr(value)


def _view(view: TaskView) -> Dict[str, Any]:
    data = view.to_dict()
    data["last_result"] = _jsonable(data["last_result"])
    data["options"] = _jsonable(data["options"])
    return data


def _raise_for(error: SchedulerError | None) -> None:
    status = _STATUS_CODES.get(type(error), 400)
    detail = error.to_dict() if error is not None else {"message": "unknown error"}
    raise HTTPException(status_code=status, detail=detail)


def _unwrap(result: OperationResult) -> Any:
    if not result.ok:
        _raise_for(result.error)
    return result.data


@app.get("/tasks")
def list_tasks():
    """Return every registered task."""
    views = _unwrap(get_default_scheduler().list_tasks())
    return [_view(view) for view in views]


@app.get("/tasks/{task_id}")
def get_task(task_id: str):
    """Return one task."""
    return _view(_unwrap(get_default_scheduler().get_task_info(task_id)))


@app.post("/tasks", status_code=201)
def schedule_task(request: ScheduleRequest):
    """Load a handler by import path and schedule it."""
    try:
        handler = load_handler(request.handler)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        logger.warning("Could not load handler %s: %s", request.handler, exc)
        raise HTTPException(400, detail={"code": "invalid_handler", "message": str(exc)}) from exc

    options: Dict[str, Any] = dict(request.options)
    if request.timezone:
        options["timezone"] = request.timezone
    options["run_on_start"] = request.run_on_start

    data = _unwrap(
        get_default_scheduler().schedule_task(
            request.task_id, request.schedule, handler, options
        )
    )
    return jsonable_encoder(data)


@app.post("/tasks/{task_id}/run")
def run_task(task_id: str):
    """Run ``task_id`` immediately and return the handler result."""
    data = _unwrap(get_default_scheduler().run_task(task_id))
    return {"task_id": data["task_id"], "result": _jsonable(data["result"])}


@app.post("/tasks/{task_id}/cancel")
def cancel_task(task_id: str):
    """Stop automatic runs of ``task_id``."""
    return _unwrap(get_default_scheduler().cancel_task(task_id))


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str):
    """Remove ``task_id``."""
    return _unwrap(get_default_scheduler().delete_task(task_id))


@app.get("/stats")
def stats():
    return get_default_scheduler().get_stats()


@app.get("/validate")
def validate_expression(
    expression: str = Query(...),
    timezone: str = Query("UTC"),
):
    """Report whether ``expression`` is valid and when it fires next."""
    if not validate(expression):
        return {"expression": expression, "valid": False, "next_run": None}
    if not is_valid_timezone(timezone):
        raise HTTPException(400, detail={"code": "invalid_timezone", "message": timezone})
    return {
        "expression": expression,
        "valid": True,
        "next_run": next_run(expression, timezone).isoformat(),
    }


__all__ = ["app", "ScheduleRequest"]
