import json
from datetime import datetime, timezone

import pytest

from cronherd.events import TASK_COMPLETED, EventNotifier
from cronherd.transport import (
    BaseTransport,
    GrpcClient,
    NatsClient,
    encode_payload,
    get_client,
)


class DummyStub:
    def __init__(self):
        self.called = []

    def Send(self, msg, timeout=None):
        self.called.append((msg, timeout))

    def Publish(self, msg, timeout=None):
        self.called.append(("publish", msg, timeout))


class DummyConn:
    def __init__(self):
        self.actions = []

    def publish(self, subject, msg):
        self.actions.append(("pub", subject, msg))

    def flush(self, timeout=0):
        self.actions.append(("flush", timeout))


def test_base_transport_not_implemented():
    with pytest.raises(NotImplementedError):
        BaseTransport().enqueue({"event": "x"})


def test_get_client_types():
    assert isinstance(get_client("grpc", stub=DummyStub()), GrpcClient)
    assert isinstance(get_client("nats", connection=DummyConn()), NatsClient)
    with pytest.raises(ValueError):
        get_client("unknown")


def test_grpc_sends_payload_mapping():
    stub = DummyStub()
    GrpcClient(stub).enqueue({"event": "task:completed"}, timeout=0.1)
    assert stub.called == [({"event": "task:completed"}, 0.1)]


def test_grpc_custom_method_and_message():
    stub = DummyStub()
    client = GrpcClient(stub, method="Publish", message=lambda data: ("Event", data["task_id"]))
    client.enqueue({"task_id": "nightly"})
    assert stub.called == [("publish", ("Event", "nightly"), 0.2)]


def test_nats_encodes_json():
    conn = DummyConn()
    NatsClient(conn, subject="demo").enqueue({"task_id": "a", "runs": 2}, timeout=0.3)
    (pub, flush) = conn.actions
    assert pub[:2] == ("pub", "demo")
    assert json.loads(pub[2]) == {"task_id": "a", "runs": 2}
    assert flush == ("flush", 0.3)


def test_nats_passes_bytes_through():
    conn = DummyConn()
    NatsClient(conn).enqueue(b"raw")
    assert conn.actions[0] == ("pub", "cronherd.events", b"raw")


def test_encode_payload_handles_datetimes_and_objects():
    when = datetime(2026, 1, 1, 9, 30, tzinfo=timezone.utc)
    data = json.loads(encode_payload({"next_run": when, "result": object, "error": None}))
    assert data["next_run"] == "2026-01-01T09:30:00+00:00"
    assert data["result"] == repr(object)
    assert data["error"] is None


def test_notifier_forwards_to_nats():
    conn = DummyConn()
    hub = EventNotifier(client=get_client("nats", connection=conn))
    try:
        event = hub.publish(TASK_COMPLETED, "nightly", result="ok")
        assert hub.flush()
    finally:
        hub.close()
    (pub, flush) = conn.actions
    assert pub[1] == "cronherd.events"
    assert json.loads(pub[2]) == {
        "event": TASK_COMPLETED,
        "task_id": "nightly",
        "result": "ok",
        "timestamp": event.timestamp.isoformat(),
    }
    assert flush == ("flush", 0.2)
