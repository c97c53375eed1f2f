from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402

_CLOSED = object()


class FakeRealtimeSocket:
    """Stands in for a websockets ClientConnection to the Realtime API."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls += 1
        self._incoming.put_nowait(_CLOSED)

    def push(self, message: Any) -> None:
        if isinstance(message, dict):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def fail(self, exc: BaseException) -> None:
        self._incoming.put_nowait(exc)

    def sent_of_type(self, message_type: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == message_type]

    def __aiter__(self) -> FakeRealtimeSocket:
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    def __init__(self, exc: BaseException | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.sockets: list[FakeRealtimeSocket] = []
        self._exc = exc

    async def __call__(self, url: str, *, additional_headers=None, **kwargs) -> FakeRealtimeSocket:
        self.calls.append({"url": url, "headers": dict(additional_headers or {})})
        if self._exc is not None:
            raise self._exc
        socket = FakeRealtimeSocket()
        self.sockets.append(socket)
        return socket


class FakeInboundSocket:
    """Stands in for the Twilio-facing Starlette WebSocket."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))


class RecordingSink:
    def __init__(self) -> None:
        self.payloads: list[str] = []

    async def send_audio(self, payload: str) -> None:
        self.payloads.append(payload)


async def settle(rounds: int = 10) -> None:
    """Let background tasks (handshake, reader, session timer) run."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        session_update_delay_seconds=0,
        realtime_instructions="You are a helpful test agent.",
    )


@pytest.fixture()
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture(scope="session")
def app():
    import importlib

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
