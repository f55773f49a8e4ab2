"""Transport clients forwarding lifecycle events to external services.

The notifier hands every client the :meth:`~cronherd.events.TaskEvent.to_dict`
payload of an event.  How that mapping goes over the wire is up to the
client: NATS messages carry it as JSON bytes, gRPC stubs receive it as is or
through a ``message`` factory building the request type.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Mapping


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return repr(value)


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    """Serialize an event payload to UTF-8 JSON."""

    return json.dumps(dict(payload), default=_json_default, sort_keys=True).encode("utf-8")


class BaseTransport:
    """Abstract transport client interface."""

    def enqueue(self, obj: Any, timeout: float = 0.2) -> None:
        """Deliver *obj* within ``timeout`` seconds."""
        raise NotImplementedError


class GrpcClient(BaseTransport):
    """Send event payloads through a unary method of a gRPC stub.

    ``message`` turns the payload mapping into the request object the stub
    expects, e.g. ``lambda data: events_pb2.Event(**data)``.
    """

    def __init__(
        self,
        stub: Any,
        method: str = "Send",
        message: Callable[[Mapping[str, Any]], Any] | None = None,
    ) -> None:
        self._stub = stub
        self._method = method
        self._message = message

    def enqueue(self, obj: Any, timeout: float = 0.2) -> None:
        rpc = getattr(self._stub, self._method)
        request = self._message(obj) if self._message is not None else obj
        rpc(request, timeout=timeout)


class NatsClient(BaseTransport):
    """Publish event payloads as JSON on a NATS subject."""

    def __init__(self, connection: Any, subject: str = "cronherd.events") -> None:
        self._connection = connection
        self._subject = subject

    def enqueue(self, obj: Any, timeout: float = 0.2) -> None:
        data = obj if isinstance(obj, bytes) else encode_payload(obj)
        self._connection.publish(self._subject, data)
        self._connection.flush(timeout=timeout)


def get_client(transport: str, **kwargs: Any) -> BaseTransport:
    """Return a transport client for ``transport`` (``grpc`` or ``nats``)."""

    if transport == "grpc":
        return GrpcClient(**kwargs)
    if transport == "nats":
        return NatsClient(**kwargs)
    raise ValueError(f"Unknown transport type: {transport}")


__all__ = ["BaseTransport", "GrpcClient", "NatsClient", "encode_payload", "get_client"]
