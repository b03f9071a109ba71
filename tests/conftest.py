"""
Pytest configuration and fixtures for chat gateway tests.
"""

import asyncio
import itertools

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from chat_gateway.components.connection.registry import ConnectionRegistry
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.connection_manager import ConnectionManager
from chat_gateway.core.connection import BroadcastRouter
from chat_gateway.core.session import ChatSession


class FakeWebSocket:
    """
    In-memory stand-in for a Starlette WebSocket.

    Records every frame sent and every close; inbound frames are fed with
    push_text / push_disconnect.
    """

    def __init__(self, fail_send: bool = False, send_delay: float = 0.0):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.headers: dict[str, str] = {}
        self.sent: list[dict] = []
        self.close_codes: list[int] = []
        self.fail_send = fail_send
        self.send_delay = send_delay
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def accept(self):
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data):
        if self.fail_send:
            raise RuntimeError("socket is broken")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None):
        self.close_codes.append(code)
        self.application_state = WebSocketState.DISCONNECTED

    async def receive(self):
        return await self._inbound.get()

    def push_text(self, text: str) -> None:
        self._inbound.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self._inbound.put_nowait({"type": "websocket.receive", "bytes": data})

    def push_disconnect(self, code: int = 1000) -> None:
        self._inbound.put_nowait({"type": "websocket.disconnect", "code": code})

    def of_type(self, frame_type: str) -> list[dict]:
        return [f for f in self.sent if f["type"] == frame_type]


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def router(registry, metrics):
    return BroadcastRouter(registry=registry, metrics=metrics, send_timeout=0.2)


@pytest.fixture
def make_session(registry, router, metrics):
    """
    Factory for sessions sharing one registry and router.

    Ids come from one counter and generated names follow User1, User2, ...
    """
    ids = itertools.count(1)
    names = itertools.count(1)

    def factory(websocket=None, requested_name=None, connection_id=None):
        return ChatSession(
            websocket or FakeWebSocket(),
            connection_id if connection_id is not None else next(ids),
            registry,
            router,
            metrics,
            allocate_id=lambda: next(ids),
            generate_name=lambda: f"User{next(names)}",
            requested_name=requested_name,
        )

    return factory


@pytest.fixture
def manager():
    return ConnectionManager()


@pytest.fixture
def client(monkeypatch, manager):
    """
    Test client with a fresh connection manager installed on the app.
    """
    import chat_gateway.main as main

    monkeypatch.setattr(main, "manager", manager)

    with TestClient(main.app) as test_client:
        yield test_client
