"""Shared fakes: an in-memory channel socket and an httpx mock transport."""

import asyncio
import json
from typing import Any, Callable, Optional

import httpx
import pytest

from poscam.client import AsyncCameraClient
from poscam.transport.base import EventHandler, JoinResult


def camera_body(code: str = "ABC123", state: str = "waiting") -> dict[str, Any]:
    return {
        "camera": {
            "code": code,
            "qrcode_url": f"http://localhost:4000/images/qr/{code}.png",
            "state": state,
        }
    }


class FakeChannel:
    def __init__(self, topic: str, join_result: JoinResult, gate: Optional[asyncio.Event] = None,
                 script: Optional[list[tuple[str, dict[str, Any]]]] = None):
        self.topic = topic
        self.join_result = join_result
        self.gate = gate
        self.script = list(script or [])
        self.handlers: dict[str, list[EventHandler]] = {}
        self.join_calls = 0
        self.leave_calls = 0
        self.pushes: list[tuple[str, dict[str, Any]]] = []
        self.push_error: Optional[Exception] = None

    async def join(self) -> JoinResult:
        self.join_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.script:
            self._player = asyncio.ensure_future(self._play())
        return self.join_result

    def on(self, event: str, handler: EventHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def push(self, event: str, payload: dict[str, Any]) -> None:
        if self.push_error is not None:
            raise self.push_error
        self.pushes.append((event, payload))

    async def leave(self) -> None:
        self.leave_calls += 1

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Simulate a server push."""
        for handler in list(self.handlers.get(event, ())):
            handler(payload)

    async def _play(self) -> None:
        # One push per loop turn, after the client has bound its handlers
        for event, payload in self.script:
            await asyncio.sleep(0)
            self.emit(event, payload)


class FakeSocket:
    def __init__(self, url: str, params: dict[str, str], join_result: JoinResult,
                 join_gate: Optional[asyncio.Event] = None, connect_error: Optional[Exception] = None,
                 script: Optional[list[tuple[str, dict[str, Any]]]] = None,
                 connect_gate: Optional[asyncio.Event] = None):
        self.url = url
        self.params = params
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.channels: list[FakeChannel] = []
        self._join_result = join_result
        self._join_gate = join_gate
        self._connect_error = connect_error
        self._script = script
        self._connect_gate = connect_gate

    async def connect(self) -> None:
        self.connect_calls += 1
        if self._connect_gate is not None:
            await self._connect_gate.wait()
        if self._connect_error is not None:
            raise self._connect_error

    def channel(self, topic: str) -> FakeChannel:
        channel = FakeChannel(topic, self._join_result, self._join_gate, self._script)
        self.channels.append(channel)
        return channel

    async def disconnect(self) -> None:
        self.disconnect_calls += 1

    @property
    def channel0(self) -> FakeChannel:
        return self.channels[0]


class FakeSocketFactory:
    """Stands in for PhoenixSocket; records every socket it builds."""

    def __init__(self) -> None:
        self.sockets: list[FakeSocket] = []
        self.join_result = JoinResult(status="ok")
        self.join_gates: list[Optional[asyncio.Event]] = []
        self.connect_gates: list[Optional[asyncio.Event]] = []
        self.connect_error: Optional[Exception] = None
        self.script: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, url: str, params: dict[str, str]) -> FakeSocket:
        gate = self.join_gates.pop(0) if self.join_gates else None
        connect_gate = self.connect_gates.pop(0) if self.connect_gates else None
        socket = FakeSocket(url, params, self.join_result, gate, self.connect_error, self.script, connect_gate)
        self.sockets.append(socket)
        return socket

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


class FakeCameraServer:
    """httpx handler for POST /api/cameras.

    Replies are consumed in order and the last one repeats. A reply is a dict
    (200 JSON body), an int (bare status), an exception to raise, or an async
    callable taking the request.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.replies: list[Any] = [camera_body()]

    def reply(self, *replies: Any) -> None:
        self.replies = list(replies)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, int):
            return httpx.Response(reply)
        if isinstance(reply, dict):
            return httpx.Response(200, json=reply)
        return await reply(request)

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content.decode())


@pytest.fixture
def server() -> FakeCameraServer:
    return FakeCameraServer()


@pytest.fixture
def sockets() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest.fixture
def make_client(server: FakeCameraServer, sockets: FakeSocketFactory) -> Callable[..., AsyncCameraClient]:
    def factory(session_id: str = "test-session", **kwargs: Any) -> AsyncCameraClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(server))
        return AsyncCameraClient(session_id, http_client=http_client, socket_factory=sockets, **kwargs)
    return factory


async def spin_until(condition: Callable[[], Any], rounds: int = 200) -> None:
    """Yield to the loop until `condition()` is truthy."""
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
