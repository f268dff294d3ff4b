"""
Connection settings for the pairing service.
"""

from typing import Optional

from pydantic import BaseModel

DEFAULT_HOST = "poscam.shop"


class CameraConfig(BaseModel):
    host: str = DEFAULT_HOST
    use_https: bool = True
    auth_token: Optional[str] = None

    @property
    def http_base_url(self) -> str:
        return f"{'https' if self.use_https else 'http'}://{self.host}"

    @property
    def socket_url(self) -> str:
        return f"{'wss' if self.use_https else 'ws'}://{self.host}/socket"
