"""
REST HTTP client for the pairing service.
"""

from typing import Any, Optional

import httpx

from poscam.config import DEFAULT_HOST

DEFAULT_BASE_URL = f"https://{DEFAULT_HOST}"


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=30.0)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "poscam-sdk/0.1.0",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def post(self, path: str, body: Optional[dict[str, Any]] = None) -> httpx.Response:
        """POST JSON and return the raw response; status handling is left to the caller."""
        return await self._client.post(f"{self._base_url}{path}", json=body, headers=self._headers())

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
