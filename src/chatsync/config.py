"""
Client configuration.
"""

from typing import Optional

from pydantic import BaseModel, model_validator

from chatsync.transport.http import DEFAULT_BASE_URL


def derive_ws_url(base_url: str) -> str:
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        return "wss://" + base[len("https://"):] + "/ws"
    if base.startswith("http://"):
        return "ws://" + base[len("http://"):] + "/ws"
    return base + "/ws"


class ChatSyncConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    ws_url: Optional[str] = None          # defaults to base_url with a ws scheme + /ws
    max_reconnect_attempts: int = 5
    reconnect_base_delay: float = 1.0
    reconnect_cap_delay: float = 10.0
    poll_interval: float = 5.0
    fetch_debounce: float = 0.5
    roster_interval: float = 30.0
    notice_ttl: float = 5.0
    http_timeout: float = 30.0
    ws_open_timeout: float = 10.0

    @model_validator(mode="after")
    def _fill_ws_url(self) -> "ChatSyncConfig":
        if not self.ws_url:
            self.ws_url = derive_ws_url(self.base_url)
        return self
