"""
chatsync — realtime one-to-one chat client for Python.

WebSocket + REST client that keeps one ordered, deduplicated conversation
view consistent with the server across drops, retries and fallback polling.
"""

from chatsync.client import AsyncChatClient, ChatClient
from chatsync.config import ChatSyncConfig
from chatsync.connection import ConnectionManager, reconnect_delay
from chatsync.errors import (
    ApiError,
    AuthError,
    AuthRequiredError,
    ChatSyncError,
    ForbiddenError,
    FrameValidationError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from chatsync.fallback import FallbackSynchronizer
from chatsync.models.frames import FrameType
from chatsync.models.message import CanonicalId, DeliveryStatus, Message, ProvisionalId
from chatsync.models.session import ConnectionState
from chatsync.presence import PresenceTable
from chatsync.reconcile import ReconciliationEngine
from chatsync.store import MessageStore, StoreResult

__version__ = "0.1.0"
__all__ = [
    "AsyncChatClient",
    "ChatClient",
    "ChatSyncConfig",
    "ConnectionManager",
    "ConnectionState",
    "reconnect_delay",
    "ReconciliationEngine",
    "FallbackSynchronizer",
    "MessageStore",
    "StoreResult",
    "PresenceTable",
    "Message",
    "CanonicalId",
    "ProvisionalId",
    "DeliveryStatus",
    "FrameType",
    "ChatSyncError",
    "AuthError",
    "AuthRequiredError",
    "ForbiddenError",
    "NotFoundError",
    "ApiError",
    "TransportError",
    "ValidationError",
    "FrameValidationError",
]
