"""
Cameras REST API — the pairing handshake.

POST /api/cameras {"session_id": ...} -> {"camera": {"code", "qrcode_url", "state"}}
"""

import logging

import httpx
from pydantic import ValidationError

from poscam.errors import HandshakeError
from poscam.models.camera import CameraInfo, CreateCameraResponse
from poscam.transport.http import HttpClient

logger = logging.getLogger(__name__)


class CamerasAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def create(self, session_id: str) -> CameraInfo:
        """Allocate a pairing code and QR image for `session_id`."""
        try:
            resp = await self._http.post("/api/cameras", {"session_id": session_id})
        except httpx.HTTPError as e:
            logger.warning("Camera handshake transport failure: %s", e)
            raise HandshakeError(str(e) or type(e).__name__) from e

        if not resp.is_success:
            raise HandshakeError(
                f"Failed to fetch camera: {resp.reason_phrase}",
                details={"status_code": resp.status_code},
            )

        try:
            return CreateCameraResponse.model_validate(resp.json()).camera
        except (ValueError, ValidationError) as e:
            raise HandshakeError(f"Invalid camera response: {e}") from e
