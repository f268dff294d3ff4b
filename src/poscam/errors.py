"""
Poscam error types.

None of these escape AsyncCameraClient.initialize()/retry(): the client
turns them into a FAILED state plus a human-readable ``error`` string.
"""

from typing import Any, Optional


class PoscamError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class HandshakeError(PoscamError):
    """POST /api/cameras failed (non-2xx, transport failure, bad body)."""

    def __init__(self, message: str, code: str = "handshake_error", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class ChannelJoinError(PoscamError):
    def __init__(self, reason: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__("channel_join_error", f"Channel error: {reason or 'Unknown error'}", details)
        self.reason = reason


class RemoteSessionError(PoscamError):
    def __init__(self, message: str = "Camera session reported an error"):
        super().__init__("remote_session_error", message)


class InvalidTransition(PoscamError):
    def __init__(self, source: str, target: str):
        super().__init__("invalid_transition", f"Cannot transition from {source!r} to {target!r}")
        self.source = source
        self.target = target
