"""
Integration tests against a real pairing service.

Requires environment variables:
  POSCAM_INTEGRATION  — any value enables the tests
  POSCAM_HOST         — (optional) defaults to poscam.shop
  POSCAM_USE_HTTPS    — (optional) "0" for http/ws, e.g. a local dev server
  POSCAM_AUTH_TOKEN   — (optional) bearer token

Run: POSCAM_INTEGRATION=1 pytest tests/integration/ -v
"""

import os
import uuid

import pytest

from poscam import AsyncCameraClient, CameraState

SKIP = not os.environ.get("POSCAM_INTEGRATION")
HOST = os.environ.get("POSCAM_HOST", "poscam.shop")
USE_HTTPS = os.environ.get("POSCAM_USE_HTTPS", "1") != "0"
AUTH_TOKEN = os.environ.get("POSCAM_AUTH_TOKEN") or None

pytestmark = pytest.mark.skipif(SKIP, reason="POSCAM_INTEGRATION not set")


def make_client() -> AsyncCameraClient:
    return AsyncCameraClient(f"it-{uuid.uuid4()}", auth_token=AUTH_TOKEN, host=HOST, use_https=USE_HTTPS)


class TestPairing:
    @pytest.mark.asyncio
    async def test_handshake_and_join(self):
        async with make_client() as client:
            await client.initialize()
            assert client.error is None, client.error
            assert client.state == CameraState.AWAITING_PEER
            assert client.pairing.code
            assert client.qr_code_url
            assert client.connected

    @pytest.mark.asyncio
    async def test_retry_starts_new_pairing(self):
        async with make_client() as client:
            await client.initialize()
            first = client.snapshot
            await client.retry()
            assert client.snapshot.epoch == first.epoch + 1
            assert client.state == CameraState.AWAITING_PEER
            assert client.images == ()
