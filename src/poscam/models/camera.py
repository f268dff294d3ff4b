"""
Camera pairing models: handshake body, push payloads and the session snapshot.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CameraState(str, Enum):
    IDLE = "idle"              # client-only: no handshake attempted yet
    PENDING = "loading"        # handshake or join in flight
    AWAITING_PEER = "waiting"  # channel joined, camera device not connected yet
    ACTIVE = "connected"       # camera connected, accepts take_picture
    CLOSED = "closed"
    FAILED = "error"


class CameraInfo(BaseModel):
    code: str
    qrcode_url: str
    state: CameraState = CameraState.AWAITING_PEER


class CreateCameraResponse(BaseModel):
    """POST /api/cameras response body"""
    camera: CameraInfo


class StatePayload(BaseModel):
    """`state` push payload"""
    state: CameraState


class ImagePayload(BaseModel):
    """`image` / `image_url` push payload"""
    id: Optional[str] = None
    url: str


class PairingInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    qr_code_url: str

    @property
    def topic(self) -> str:
        return f"camera:channel:{self.code}"


class CapturedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    received_at: datetime

    @classmethod
    def from_payload(cls, payload: ImagePayload, received_at: Optional[datetime] = None) -> "CapturedImage":
        """Build an image record from a push payload.

        When the server sends no id, one is synthesised from the url and the
        receipt time in milliseconds (``<url>#<ms>``). This is a fallback so
        repeated captures of the same url stay distinguishable, not a guess at
        how the server names images.
        """
        received_at = received_at or datetime.now(timezone.utc)
        image_id = payload.id or f"{payload.url}#{int(received_at.timestamp() * 1000)}"
        return cls(id=image_id, url=payload.url, received_at=received_at)


class CameraSnapshot(BaseModel):
    """Immutable view of one pairing session.

    The client swaps the whole snapshot on every change, so a reader never
    sees the pairing code of one epoch next to the images of another.
    """

    model_config = ConfigDict(frozen=True)

    state: CameraState = CameraState.IDLE
    error: Optional[str] = None
    pairing: Optional[PairingInfo] = None
    images: tuple[CapturedImage, ...] = ()
    epoch: int = 0

    @property
    def latest_image(self) -> Optional[CapturedImage]:
        return self.images[-1] if self.images else None

    @property
    def qr_code_url(self) -> str:
        return self.pairing.qr_code_url if self.pairing else ""

    @property
    def is_loading(self) -> bool:
        return self.state == CameraState.PENDING
