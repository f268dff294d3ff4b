"""CamerasAPI handshake over httpx.MockTransport."""

import json

import httpx
import pytest

from conftest import camera_body
from poscam.cameras import CamerasAPI
from poscam.errors import HandshakeError
from poscam.models.camera import CameraState
from poscam.transport.http import HttpClient


def _api(handler, token=None) -> CamerasAPI:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CamerasAPI(HttpClient(base_url="https://poscam.shop", token=token, client=client))


@pytest.mark.asyncio
async def test_create_posts_session_id():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=camera_body("XYZ"))

    camera = await _api(handler, token="tok").create("sess-1")
    assert camera.code == "XYZ"
    assert camera.state == CameraState.AWAITING_PEER

    request = seen[0]
    assert request.url.path == "/api/cameras"
    assert json.loads(request.content) == {"session_id": "sess-1"}
    assert request.headers["authorization"] == "Bearer tok"
    assert request.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_non_2xx_uses_reason_phrase():
    api = _api(lambda request: httpx.Response(404, json={"errors": {"detail": "Not Found"}}))
    with pytest.raises(HandshakeError) as exc:
        await api.create("sess-1")
    assert str(exc.value) == "Failed to fetch camera: Not Found"
    assert exc.value.code == "handshake_error"
    assert exc.value.details == {"status_code": 404}


@pytest.mark.asyncio
async def test_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HandshakeError) as exc:
        await _api(handler).create("sess-1")
    assert str(exc.value) == "connection refused"


@pytest.mark.asyncio
async def test_non_json_body():
    api = _api(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(HandshakeError) as exc:
        await api.create("sess-1")
    assert str(exc.value).startswith("Invalid camera response")


@pytest.mark.asyncio
async def test_unknown_state_rejected():
    api = _api(lambda request: httpx.Response(200, json=camera_body(state="sleeping")))
    with pytest.raises(HandshakeError):
        await api.create("sess-1")
