"""
Phoenix channels client over websockets.

Connection: {ws,wss}://{host}/socket/websocket?vsn=2.0.0&code=<code>
Frames are v2 JSON arrays: [join_ref, ref, topic, event, payload].
Replies to phx_join / phx_leave arrive as phx_reply with a matching ref.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from poscam.transport.base import EventHandler, JoinResult

logger = logging.getLogger(__name__)

PROTOCOL_VSN = "2.0.0"
HEARTBEAT_INTERVAL_S = 30.0
JOIN_TIMEOUT_S = 10.0

Connector = Callable[[str], Awaitable[Any]]


class PhoenixChannel:
    def __init__(self, socket: "PhoenixSocket", topic: str, join_timeout: float = JOIN_TIMEOUT_S):
        self.topic = topic
        self.join_ref: Optional[str] = None
        self.joined = False
        self._socket = socket
        self._join_timeout = join_timeout
        self._bindings: dict[str, list[EventHandler]] = {}

    def on(self, event: str, handler: EventHandler) -> None:
        self._bindings.setdefault(event, []).append(handler)

    async def join(self) -> JoinResult:
        """Send phx_join and wait for the reply.

        Timeouts and dropped connections resolve as an error result rather
        than raising, matching how the server reports a refused join.
        """
        self.join_ref = self._socket.make_ref()
        try:
            reply = await self._socket.request(
                self.topic, "phx_join", {},
                join_ref=self.join_ref, ref=self.join_ref, timeout=self._join_timeout,
            )
        except asyncio.TimeoutError:
            return JoinResult(status="error", response={"reason": "timeout"})
        except ConnectionError as e:
            return JoinResult(status="error", response={"reason": str(e)})

        response = reply.get("response")
        result = JoinResult(
            status="ok" if reply.get("status") == "ok" else "error",
            response=response if isinstance(response, dict) else {},
        )
        self.joined = result.ok
        return result

    async def push(self, event: str, payload: dict[str, Any]) -> None:
        if not self.joined:
            raise ConnectionError(f"Cannot push {event!r}: {self.topic!r} is not joined")
        await self._socket.send(self.join_ref, self._socket.make_ref(), self.topic, event, payload)

    async def leave(self) -> None:
        """Send phx_leave without waiting for the reply."""
        if self.joined and self._socket.connected:
            try:
                await self._socket.send(self.join_ref, self._socket.make_ref(), self.topic, "phx_leave", {})
            except ConnectionError:
                logger.debug("Socket already closed while leaving %s", self.topic)
        self.joined = False
        self._socket.remove(self)

    def trigger(self, event: str, payload: dict[str, Any]) -> None:
        for handler in list(self._bindings.get(event, ())):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s on %s failed", event, self.topic)


class PhoenixSocket:
    def __init__(
        self,
        endpoint: str,
        params: Optional[dict[str, str]] = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_S,
        join_timeout: float = JOIN_TIMEOUT_S,
        connector: Optional[Connector] = None,
    ):
        self._endpoint = endpoint.rstrip("/")
        self._params = dict(params or {})
        self._heartbeat_interval = heartbeat_interval
        self._join_timeout = join_timeout
        self._connector = connector or websockets.connect
        self._ws: Any = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._heartbeat: Optional[asyncio.Task[None]] = None
        self._ref = 0
        self._closes = 0
        self._channels: dict[str, PhoenixChannel] = {}
        self._replies: dict[str, asyncio.Future[dict[str, Any]]] = {}

    @property
    def url(self) -> str:
        query = urlencode({**self._params, "vsn": PROTOCOL_VSN})
        return f"{self._endpoint}/websocket?{query}"

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def make_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    async def connect(self) -> None:
        if self._ws is not None:
            return
        logger.debug("Connecting to %s", self._endpoint)
        closes = self._closes
        try:
            ws = await self._connector(self.url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ConnectionError(f"Could not connect to {self._endpoint}: {e}") from e
        if self._closes != closes:
            # disconnect() ran while the handshake was in flight
            await ws.close()
            raise ConnectionError("Phoenix socket closed while connecting")
        self._ws = ws
        self._reader = asyncio.create_task(self._read_loop(self._ws))
        self._heartbeat = asyncio.create_task(self._heartbeat_loop())

    def channel(self, topic: str) -> PhoenixChannel:
        channel = PhoenixChannel(self, topic, join_timeout=self._join_timeout)
        self._channels[topic] = channel
        return channel

    def remove(self, channel: PhoenixChannel) -> None:
        if self._channels.get(channel.topic) is channel:
            del self._channels[channel.topic]

    async def send(
        self, join_ref: Optional[str], ref: Optional[str], topic: str, event: str, payload: dict[str, Any],
    ) -> None:
        if self._ws is None:
            raise ConnectionError("Phoenix socket not connected")
        try:
            await self._ws.send(json.dumps([join_ref, ref, topic, event, payload]))
        except ConnectionClosed as e:
            raise ConnectionError(f"Phoenix socket closed: {e}") from e

    async def request(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        join_ref: Optional[str] = None,
        ref: Optional[str] = None,
        timeout: float = JOIN_TIMEOUT_S,
    ) -> dict[str, Any]:
        """Send a frame and wait for the phx_reply carrying the same ref."""
        ref = ref or self.make_ref()
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._replies[ref] = future
        try:
            await self.send(join_ref, ref, topic, event, payload)
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._replies.pop(ref, None)

    async def disconnect(self) -> None:
        """Close the connection. Idempotent; safe to call from a handler's task.

        Also cancels a connect() still in flight: its websocket is closed as
        soon as it opens.
        """
        self._closes += 1
        ws, self._ws = self._ws, None
        if ws is None:
            return
        self._teardown()
        await ws.close()
        logger.debug("Disconnected from %s", self._endpoint)

    def _teardown(self) -> None:
        current = asyncio.current_task()
        for task in (self._heartbeat, self._reader):
            if task is not None and task is not current:
                task.cancel()
        self._heartbeat = self._reader = None
        for future in self._replies.values():
            if not future.done():
                future.set_exception(ConnectionError("Phoenix socket closed"))
        self._channels.clear()

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            logger.warning("Phoenix socket closed by server: %s", e)
        if self._ws is ws:
            # Closed from the remote end rather than through disconnect()
            self._ws = None
            channels = [c for c in self._channels.values() if c.joined]
            self._teardown()
            for channel in channels:
                channel.joined = False
                channel.trigger("phx_error", {"reason": "socket closed"})

    async def _heartbeat_loop(self) -> None:
        while self._ws is not None:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.send(None, self.make_ref(), "phoenix", "heartbeat", {})
            except ConnectionError:
                return

    def _dispatch(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning("Dropping malformed frame: %s", e)
            return
        if not _is_frame(frame):
            logger.warning("Dropping malformed frame: %.200r", frame)
            return
        join_ref, ref, topic, event, payload = frame
        if not isinstance(payload, dict):
            payload = {}

        if event == "phx_reply":
            future = self._replies.get(ref)
            if future is not None and not future.done():
                future.set_result(payload)
            return

        channel = self._channels.get(topic)
        if channel is None:
            return
        if join_ref is not None and channel.join_ref is not None and join_ref != channel.join_ref:
            # Message for an earlier join of the same topic
            return
        if event in ("phx_close", "phx_error"):
            channel.joined = False
        channel.trigger(event, payload)


def _is_frame(frame: Any) -> bool:
    """[join_ref, ref, topic, event, payload] with string-or-null refs."""
    if not isinstance(frame, list) or len(frame) != 5:
        return False
    join_ref, ref, topic, event, _payload = frame
    return (
        all(r is None or isinstance(r, str) for r in (join_ref, ref))
        and isinstance(topic, str)
        and isinstance(event, str)
    )
