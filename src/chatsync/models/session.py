"""
Connection session — transient per-user context held by the ConnectionManager.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DEGRADED = "degraded"


class ConnectionSession(BaseModel):
    token: Optional[str] = None
    user_id: Optional[str] = None
    state: ConnectionState = ConnectionState.DISCONNECTED
    attempts: int = 0
    invalidated: bool = False

    @property
    def has_token(self) -> bool:
        return bool(self.token) and not self.invalidated

    def invalidate(self) -> None:
        self.invalidated = True
        self.token = None

    def renew(self, token: str) -> None:
        self.token = token
        self.invalidated = False
