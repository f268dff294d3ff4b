"""
AsyncCameraClient — pairs a camera device over QR code and collects its captures.

initialize() runs the handshake (POST /api/cameras), then joins
`camera:channel:<code>` and applies `state` / `image` pushes to the session
snapshot until the session closes, fails, or the caller disconnects.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from poscam import state
from poscam.cameras import CamerasAPI
from poscam.config import DEFAULT_HOST, CameraConfig
from poscam.errors import ChannelJoinError, HandshakeError, InvalidTransition
from poscam.models.camera import (
    CameraSnapshot,
    CameraState,
    CapturedImage,
    ImagePayload,
    PairingInfo,
    StatePayload,
)
from poscam.transport.base import Channel, ChannelSocket, JoinResult, SocketFactory
from poscam.transport.http import HttpClient
from poscam.transport.phoenix import PhoenixSocket

logger = logging.getLogger(__name__)

IMAGE_EVENTS = ("image", "image_url")

# Server-side channel loss, including a dropped socket (reported as phx_error)
CHANNEL_LOSS_EVENTS = {"phx_error": "channel crashed", "phx_close": "channel closed by server"}

Listener = Callable[[CameraSnapshot], None]


class AsyncCameraClient:
    """Async pairing session client (primary).

    Owns one session snapshot and at most one live channel socket. Every
    handshake/join continuation is tagged with the epoch it started in and
    dropped if a newer initialize() has begun since.
    """

    def __init__(
        self,
        session_id: str,
        auth_token: Optional[str] = None,
        host: str = DEFAULT_HOST,
        use_https: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
        socket_factory: Optional[SocketFactory] = None,
    ):
        self._session_id = session_id
        self._config = CameraConfig(host=host, use_https=use_https, auth_token=auth_token)

        self.http = HttpClient(base_url=self._config.http_base_url, token=auth_token, client=http_client)
        self.cameras = CamerasAPI(self.http)

        self._socket_factory: SocketFactory = socket_factory or PhoenixSocket
        self._socket: Optional[ChannelSocket] = None
        self._channel: Optional[Channel] = None
        self._teardowns: set[asyncio.Future[None]] = set()
        self._snapshot = CameraSnapshot()
        self._listeners: list[Listener] = []

    @classmethod
    def from_config(cls, session_id: str, config: CameraConfig, **kwargs: Any) -> "AsyncCameraClient":
        return cls(
            session_id,
            auth_token=config.auth_token,
            host=config.host,
            use_https=config.use_https,
            **kwargs,
        )

    # -- read side -------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def snapshot(self) -> CameraSnapshot:
        return self._snapshot

    @property
    def state(self) -> CameraState:
        return self._snapshot.state

    @property
    def error(self) -> Optional[str]:
        return self._snapshot.error

    @property
    def pairing(self) -> Optional[PairingInfo]:
        return self._snapshot.pairing

    @property
    def qr_code_url(self) -> str:
        return self._snapshot.qr_code_url

    @property
    def images(self) -> tuple[CapturedImage, ...]:
        return self._snapshot.images

    @property
    def latest_image(self) -> Optional[CapturedImage]:
        return self._snapshot.latest_image

    @property
    def is_loading(self) -> bool:
        return self._snapshot.is_loading

    @property
    def connected(self) -> bool:
        return self._channel is not None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with every new snapshot. Returns a cleanup function."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    async def wait_for_state(self, *states: CameraState, timeout: Optional[float] = None) -> CameraSnapshot:
        """Resolve with the first snapshot whose state is one of `states`."""
        if self._snapshot.state in states:
            return self._snapshot
        future: asyncio.Future[CameraSnapshot] = asyncio.get_running_loop().create_future()

        def listener(snapshot: CameraSnapshot) -> None:
            if snapshot.state in states and not future.done():
                future.set_result(snapshot)

        remove = self.add_listener(listener)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            remove()

    # -- actions ---------------------------------------------------------

    async def initialize(self) -> None:
        """Start a new epoch: handshake, then join the camera channel.

        A no-op when the session id is empty. Failures never raise; they end
        up in `state == FAILED` and `error`.
        """
        if not self._session_id:
            logger.debug("initialize() skipped: empty session id")
            return

        self._set(state.begin_epoch(self._snapshot))
        epoch = self._snapshot.epoch
        await self._release()
        if not self._is_current(epoch):
            return

        try:
            camera = await self.cameras.create(self._session_id)
        except HandshakeError as e:
            if self._is_current(epoch):
                logger.warning("Camera handshake failed: %s", e)
                self._set(state.fail(self._snapshot, str(e)))
            return

        if not self._is_current(epoch):
            logger.debug("Discarding handshake result from superseded epoch %d", epoch)
            return

        try:
            self._set(state.handshake_succeeded(self._snapshot, camera))
        except InvalidTransition as e:
            logger.warning("Camera handshake returned unusable state: %s", e)
            self._set(state.fail(self._snapshot, str(e)))
            return
        logger.info("Camera %s paired in state %s", camera.code, camera.state.value)

        if state.is_terminal(self._snapshot.state):
            return
        await self._join(self._snapshot.pairing, epoch)  # type: ignore[arg-type]

    async def take_picture(self) -> bool:
        """Ask the camera device to capture. Silently skipped unless ACTIVE."""
        channel = self._channel
        if self._snapshot.state != CameraState.ACTIVE or channel is None:
            logger.debug("take_picture() skipped in state %s", self._snapshot.state.value)
            return False
        try:
            await channel.push("take_picture", {})
        except ConnectionError as e:
            logger.warning("take_picture push failed: %s", e)
            return False
        return True

    async def disconnect(self) -> None:
        """Release the channel socket. Idempotent; leaves the state untouched."""
        await self._release()

    async def retry(self) -> None:
        await self.disconnect()
        await self.initialize()

    async def close(self) -> None:
        await self.disconnect()
        await self.http.close()

    async def __aenter__(self) -> "AsyncCameraClient":
        return self

    async def __aexit__(self, *_exc: Any) -> None:
        await self.close()

    # -- internals -------------------------------------------------------

    def _is_current(self, epoch: int) -> bool:
        return self._snapshot.epoch == epoch

    def _set(self, snapshot: CameraSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")

    async def _join(self, pairing: PairingInfo, epoch: int) -> None:
        socket = self._socket_factory(self._config.socket_url, {"code": pairing.code})
        self._socket = socket
        result: Optional[JoinResult] = None
        try:
            await socket.connect()
            if self._holds(socket, epoch):
                channel = socket.channel(pairing.topic)
                result = await channel.join()
        except ConnectionError as e:
            reason: Optional[str] = str(e)
        else:
            reason = result.reason if result else None

        if not self._holds(socket, epoch):
            # Released or superseded while connecting or joining; make sure it stays closed
            logger.debug("Discarding join from superseded epoch %d", epoch)
            await socket.disconnect()
            return

        if result is None or not result.ok:
            err = ChannelJoinError(reason, details=result.response if result else None)
            logger.warning("Joining %s failed: %s", pairing.topic, err)
            self._set(state.fail(self._snapshot, str(err)))
            await self._release()
            return

        self._channel = channel
        channel.on("state", lambda payload: self._on_state(epoch, payload))
        for event in IMAGE_EVENTS:
            channel.on(event, lambda payload: self._on_image(epoch, payload))
        for event, lost in CHANNEL_LOSS_EVENTS.items():
            channel.on(event, lambda payload, lost=lost: self._on_channel_lost(epoch, channel, payload, lost))
        logger.info("Joined %s", pairing.topic)

    def _holds(self, socket: ChannelSocket, epoch: int) -> bool:
        return self._socket is socket and self._is_current(epoch)

    def _on_channel_lost(self, epoch: int, channel: Channel, raw: dict[str, Any], default_reason: str) -> None:
        if not self._is_current(epoch) or self._channel is not channel:
            return
        if state.is_terminal(self._snapshot.state):
            return
        err = ChannelJoinError(raw.get("reason") or default_reason, details=raw or None)
        logger.warning("Lost %s: %s", channel.topic, err)
        self._set(state.fail(self._snapshot, str(err)))
        self._schedule_release()

    def _on_state(self, epoch: int, raw: dict[str, Any]) -> None:
        if not self._is_current(epoch):
            return
        try:
            payload = StatePayload.model_validate(raw)
        except ValidationError as e:
            logger.warning("Dropping invalid state payload %r: %s", raw, e)
            return
        try:
            snapshot = state.apply_remote_state(self._snapshot, payload.state)
        except InvalidTransition as e:
            logger.warning("Ignoring remote state push: %s", e)
            return
        self._set(snapshot)
        if state.is_terminal(snapshot.state):
            logger.info("Camera session %s; releasing channel", snapshot.state.value)
            self._schedule_release()

    def _on_image(self, epoch: int, raw: dict[str, Any]) -> None:
        if not self._is_current(epoch):
            return
        try:
            payload = ImagePayload.model_validate(raw)
        except ValidationError as e:
            logger.warning("Dropping invalid image payload %r: %s", raw, e)
            return
        self._set(state.append_image(self._snapshot, CapturedImage.from_payload(payload)))

    def _detach(self) -> tuple[Optional[ChannelSocket], Optional[Channel]]:
        socket, channel = self._socket, self._channel
        self._socket = self._channel = None
        return socket, channel

    def _schedule_release(self) -> None:
        # Called from inside a channel handler: detach now, close on the loop
        socket, channel = self._detach()
        if socket is None:
            return
        task = asyncio.ensure_future(self._close(socket, channel))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _release(self) -> None:
        socket, channel = self._detach()
        if socket is not None:
            await self._close(socket, channel)
        if self._teardowns:
            await asyncio.gather(*self._teardowns)

    @staticmethod
    async def _close(socket: ChannelSocket, channel: Optional[Channel]) -> None:
        if channel is not None:
            await channel.leave()
        await socket.disconnect()
