"""
Pairing session state machine.

One transition table shared by the local call path (initialize, handshake,
join) and the remote push path (`state` events). Every reducer takes the
current snapshot and returns a new one; nothing here touches the network.

    IDLE -> PENDING -> {AWAITING_PEER | ACTIVE | CLOSED | FAILED}
    AWAITING_PEER -> {ACTIVE | CLOSED | FAILED}
    ACTIVE -> {CLOSED | FAILED}
    CLOSED, FAILED: terminal until the next epoch

A new epoch (initialize or retry) may start from any state: X -> PENDING.
"""

from __future__ import annotations

from poscam.errors import InvalidTransition, RemoteSessionError
from poscam.models.camera import CameraInfo, CameraSnapshot, CameraState, CapturedImage, PairingInfo

TRANSITIONS: dict[CameraState, frozenset[CameraState]] = {
    CameraState.IDLE: frozenset({CameraState.PENDING}),
    CameraState.PENDING: frozenset({
        CameraState.PENDING, CameraState.AWAITING_PEER, CameraState.ACTIVE,
        CameraState.CLOSED, CameraState.FAILED,
    }),
    CameraState.AWAITING_PEER: frozenset({
        CameraState.PENDING, CameraState.AWAITING_PEER, CameraState.ACTIVE,
        CameraState.CLOSED, CameraState.FAILED,
    }),
    CameraState.ACTIVE: frozenset({
        CameraState.PENDING, CameraState.ACTIVE, CameraState.CLOSED, CameraState.FAILED,
    }),
    CameraState.CLOSED: frozenset({CameraState.PENDING}),
    CameraState.FAILED: frozenset({CameraState.PENDING}),
}

TERMINAL_STATES = frozenset({CameraState.CLOSED, CameraState.FAILED})


def can_transition(source: CameraState, target: CameraState) -> bool:
    return target in TRANSITIONS[source]


def is_terminal(state: CameraState) -> bool:
    return state in TERMINAL_STATES


def _move(snapshot: CameraSnapshot, target: CameraState, **changes: object) -> CameraSnapshot:
    if not can_transition(snapshot.state, target):
        raise InvalidTransition(snapshot.state.value, target.value)
    return snapshot.model_copy(update={"state": target, **changes})


def begin_epoch(snapshot: CameraSnapshot) -> CameraSnapshot:
    """Start a new epoch: PENDING, no pairing, no error, empty image history."""
    return _move(snapshot, CameraState.PENDING, error=None, pairing=None, images=(), epoch=snapshot.epoch + 1)


def handshake_succeeded(snapshot: CameraSnapshot, camera: CameraInfo) -> CameraSnapshot:
    pairing = PairingInfo(code=camera.code, qr_code_url=camera.qrcode_url)
    if camera.state == CameraState.FAILED:
        return _move(snapshot, CameraState.FAILED, pairing=pairing, error=str(RemoteSessionError()))
    return _move(snapshot, camera.state, pairing=pairing)


def fail(snapshot: CameraSnapshot, reason: str) -> CameraSnapshot:
    """Enter FAILED with `reason`. PairingInfo is kept so the QR code stays visible."""
    return _move(snapshot, CameraState.FAILED, error=reason)


def apply_remote_state(snapshot: CameraSnapshot, state: CameraState) -> CameraSnapshot:
    """Apply a server `state` push. An `error` state carries a RemoteSessionError message."""
    if state in (CameraState.IDLE, CameraState.PENDING):
        # Client-side phases, never legal as a server assertion
        raise InvalidTransition(snapshot.state.value, state.value)
    if state == CameraState.FAILED:
        return fail(snapshot, str(RemoteSessionError()))
    return _move(snapshot, state)


def append_image(snapshot: CameraSnapshot, image: CapturedImage) -> CameraSnapshot:
    """Append to history in arrival order. Images are kept after CLOSED."""
    return snapshot.model_copy(update={"images": snapshot.images + (image,)})
