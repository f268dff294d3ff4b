"""
Realtime channel interfaces the pairing client depends on.

Any push/subscribe transport that can connect, join a topic, register
per-event handlers, push events and disconnect can back a session.
"""

from typing import Any, Callable, Literal, Optional, Protocol

from pydantic import BaseModel

EventHandler = Callable[[dict[str, Any]], None]


class JoinResult(BaseModel):
    status: Literal["ok", "error"]
    response: dict[str, Any] = {}

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def reason(self) -> Optional[str]:
        reason = self.response.get("reason")
        return str(reason) if reason else None


class Channel(Protocol):
    topic: str

    async def join(self) -> JoinResult: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    async def push(self, event: str, payload: dict[str, Any]) -> None: ...

    async def leave(self) -> None: ...


class ChannelSocket(Protocol):
    async def connect(self) -> None: ...

    def channel(self, topic: str) -> Channel: ...

    async def disconnect(self) -> None: ...


SocketFactory = Callable[[str, dict[str, str]], ChannelSocket]
