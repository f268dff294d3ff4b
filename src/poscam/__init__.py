"""
poscam — pair a phone camera over QR code and stream its captures.

REST handshake + Phoenix channel client for the poscam pairing service.
"""

from poscam.client import AsyncCameraClient
from poscam.cameras import CamerasAPI
from poscam.config import CameraConfig
from poscam.errors import PoscamError, HandshakeError, ChannelJoinError, RemoteSessionError, InvalidTransition
from poscam.models.camera import CameraState, CameraSnapshot, CapturedImage, PairingInfo

__version__ = "0.1.0"
__all__ = [
    "AsyncCameraClient",
    "CamerasAPI",
    "CameraConfig",
    "PoscamError",
    "HandshakeError",
    "ChannelJoinError",
    "RemoteSessionError",
    "InvalidTransition",
    "CameraState",
    "CameraSnapshot",
    "CapturedImage",
    "PairingInfo",
]
