"""Shared fixtures for agent-console tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock

import httpx
import pytest

from agent_console.core.credentials import CredentialStore
from agent_console.core.event_log import EventLog
from agent_console.core.scheduler import RefreshScheduler
from agent_console.core.sync import SyncStore
from agent_console.gateway.client import GatewayClient

_CLOSE = object()


class FakeConnection:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self, messages: List[Any] = ()):
        self.queue: asyncio.Queue = asyncio.Queue()
        for message in messages:
            self.queue.put_nowait(message)
        self.sent: List[str] = []
        self.closed = False

    def feed(self, message: Any) -> None:
        self.queue.put_nowait(message)

    def remote_close(self) -> None:
        self.queue.put_nowait(_CLOSE)

    def fail(self, error: BaseException) -> None:
        self.queue.put_nowait(error)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(_CLOSE)


@pytest.fixture
def credentials(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def mock_client() -> AsyncMock:
    """GatewayClient double with two workspaces and one thread in w1."""
    client = AsyncMock(spec=GatewayClient)
    client.list_workspaces.return_value = {"workspaces": [{"id": "w1"}, {"id": "w2"}]}
    client.list_threads.return_value = {"threads": [{"id": "t1", "updatedAt": 100}]}
    client.start_thread.return_value = {"threadId": "t2"}
    client.resume_thread.return_value = {"result": {}}
    client.send_message.return_value = {"result": {"ok": True}}
    client.drawings.return_value = {"workspaces": []}
    client.rpc.return_value = {"result": None}
    return client


@pytest.fixture
def store(mock_client, event_log) -> SyncStore:
    return SyncStore(mock_client, event_log=event_log)


@pytest.fixture
def scheduler(store, event_log) -> RefreshScheduler:
    return RefreshScheduler(store, event_log, delay=0.01)


def json_transport(routes: Dict[str, Callable[[httpx.Request], httpx.Response]]) -> httpx.MockTransport:
    """MockTransport dispatching on request path; unknown paths return 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": f"no route {request.url.path}"})
        return route(request)

    return httpx.MockTransport(handler)


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload))


@pytest.fixture
def make_client(credentials) -> Callable[..., GatewayClient]:
    def factory(handler) -> GatewayClient:
        transport = handler if isinstance(handler, httpx.MockTransport) else httpx.MockTransport(handler)
        return GatewayClient("http://gateway.test", credentials=credentials, transport=transport)

    return factory
