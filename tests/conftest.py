import asyncio
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from planning_poker.app import app
from planning_poker.state import hub, registry


@pytest.fixture(autouse=True)
def clear_state():
    registry.clear()
    hub.clear()
    yield
    registry.clear()
    hub.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


class FakeWebSocket:
    """Stands in for a Starlette websocket; records every frame sent to it."""

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        # Yield like a real transport so concurrent handlers can interleave.
        await asyncio.sleep(0)
        self.sent.append(payload)

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type: str) -> Dict[str, Any]:
        return self.of_type(msg_type)[-1]["data"]


@pytest.fixture
def connect():
    """Open a fake channel on the shared hub."""

    def _connect(fail: bool = False):
        ws = FakeWebSocket(fail=fail)
        return hub.connect(ws), ws

    return _connect


def recv_until(ws, msg_type, predicate=None, max_messages=50):
    """Receive WS messages until one of *msg_type* matches *predicate*."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type and (predicate is None or predicate(data)):
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


def request(ws, msg_type, data=None, ack=1):
    """Send an event and wait for its acknowledgement payload."""
    ws.send_json({"type": msg_type, "data": data or {}, "ack": ack})
    return recv_until(ws, "ack", lambda m: m["ack"] == ack)["data"]
