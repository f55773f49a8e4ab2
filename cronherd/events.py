"""Best-effort lifecycle notifications.

Publishing only puts an event on a queue.  A single dispatcher thread drains
the queue and hands each event to the subscribers and to an optional
transport client, so a slow or failing observer can delay other observers
but never a task run.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List

from .models import utc_now
from .transport import BaseTransport

logger = logging.getLogger(__name__)

TASK_SCHEDULED = "task:scheduled"
TASK_RUNNING = "task:running"
TASK_COMPLETED = "task:completed"
TASK_FAILED = "task:failed"
TASK_CANCELLED = "task:cancelled"
TASK_DELETED = "task:deleted"

EVENT_NAMES = (
    TASK_SCHEDULED,
    TASK_RUNNING,
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_CANCELLED,
    TASK_DELETED,
)

WILDCARD = "*"

_STOP = object()


@dataclass(frozen=True)
class TaskEvent:
    """A lifecycle notification for one task."""

    name: str
    task_id: str
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def payload(self) -> Dict[str, Any]:
        return {"task_id": self.task_id, **self.context}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "timestamp": self.timestamp.isoformat(),
            **self.payload,
        }


Subscriber = Callable[[TaskEvent], Any]


class EventNotifier:
    """Queue-backed publish/subscribe hub for :class:`TaskEvent` objects.

    Parameters
    ----------
    max_queue:
        ``0`` keeps an unbounded queue.  With a positive value, events
        published while the queue is full are dropped and counted in
        :attr:`dropped`.
    client:
        Optional :class:`~cronherd.transport.BaseTransport` that receives
        the :meth:`TaskEvent.to_dict` payload of every event after the local
        subscribers.
    """

    def __init__(self, *, max_queue: int = 0, client: BaseTransport | None = None) -> None:
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max(0, int(max_queue)))
        self._subscribers: Dict[str, List[Subscriber]] = defaultdict(list)
        self._subscribers_lock = threading.Lock()
        self._client = client
        self._thread: threading.Thread | None = None
        self._thread_lock = threading.Lock()
        self._closed = False
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Subscription management
    def subscribe(self, event: str, callback: Subscriber) -> Subscriber:
        """Call ``callback`` for ``event`` (or every event with ``"*"``)."""

        if event != WILDCARD and event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event}")
        with self._subscribers_lock:
            self._subscribers[event].append(callback)
        return callback

    def unsubscribe(self, event: str, callback: Subscriber) -> bool:
        with self._subscribers_lock:
            callbacks = self._subscribers.get(event, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
        return False

    @property
    def dropped(self) -> int:
        """Number of events discarded because the queue was full."""
        with self._dropped_lock:
            return self._dropped

    def configure_transport(self, client: BaseTransport | None) -> None:
        self._client = client

    # ------------------------------------------------------------------
    # Publishing
    def publish(self, name: str, task_id: str, **context: Any) -> TaskEvent | None:
        """Queue an event; return it, or ``None`` if it was dropped."""

        event = TaskEvent(name=name, task_id=task_id, context=context)
        if self._closed:
            logger.debug("Notifier closed; dropping %s for %s", name, task_id)
            return None
        self._ensure_dispatcher()
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1
            logger.warning("Event queue full; dropping %s for %s", name, task_id)
            return None
        return event

    def flush(self, timeout: float = 2.0) -> bool:
        """Wait until every queued event has been delivered."""

        deadline = time.monotonic() + timeout
        while self._queue.unfinished_tasks:
            if time.monotonic() >= deadline:
                return False
            time.sleep(0.01)
        return True

    def close(self, timeout: float = 2.0) -> None:
        """Deliver what is queued, then stop the dispatcher thread."""

        with self._thread_lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Dispatching
    def _ensure_dispatcher(self) -> None:
        with self._thread_lock:
            if self._thread is not None or self._closed:
                return
            self._thread = threading.Thread(
                target=self._run, name="cronherd-events", daemon=True
            )
            self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, event: TaskEvent) -> None:
        with self._subscribers_lock:
            callbacks = list(self._subscribers.get(event.name, ()))
            callbacks += self._subscribers.get(WILDCARD, ())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber %r failed on %s", callback, event.name)
        client = self._client
        if client is not None:
            try:
                client.enqueue(event.to_dict())
            except Exception:
                logger.exception("Transport failed to deliver %s", event.name)


__all__ = [
    "TASK_SCHEDULED",
    "TASK_RUNNING",
    "TASK_COMPLETED",
    "TASK_FAILED",
    "TASK_CANCELLED",
    "TASK_DELETED",
    "EVENT_NAMES",
    "WILDCARD",
    "TaskEvent",
    "EventNotifier",
]
