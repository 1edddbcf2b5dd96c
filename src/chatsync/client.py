"""
AsyncChatClient / ChatClient — wire the store, presence table, connection,
reconciliation engine and fallback poller behind one facade.
"""

import asyncio
import logging
from typing import Any, Optional, Union

import httpx

from chatsync.auth import Auth
from chatsync.config import ChatSyncConfig
from chatsync.connection import ConnectionManager, Scheduler
from chatsync.conversations import ConversationsAPI
from chatsync.errors import AuthRequiredError, ChatSyncError
from chatsync.fallback import FallbackSynchronizer
from chatsync.models.message import CanonicalId, Message, MessageIdentity, ProvisionalId
from chatsync.models.session import ConnectionSession, ConnectionState
from chatsync.models.user import User
from chatsync.notices import NoticeBoard, NoticeLevel
from chatsync.presence import PresenceTable
from chatsync.reconcile import ReconciliationEngine
from chatsync.store import MessageStore
from chatsync.transport.http import HttpClient
from chatsync.transport.websocket import TransportFactory, websocket_factory

logger = logging.getLogger(__name__)

IdentityLike = Union[str, MessageIdentity]


def as_identity(value: IdentityLike) -> MessageIdentity:
    """Bare strings name server-issued messages."""
    if isinstance(value, (CanonicalId, ProvisionalId)):
        return value
    return CanonicalId(value=value)


class AsyncChatClient:
    """Async chat client (primary)."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        config: Optional[ChatSyncConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        scheduler: Optional[Scheduler] = None,
        **overrides: Any,
    ):
        self.config = config or ChatSyncConfig(**overrides)
        self.session = ConnectionSession(token=access_token)

        self.http = HttpClient(
            self.session,
            base_url=self.config.base_url,
            timeout=self.config.http_timeout,
            transport=http_transport,
        )
        self.auth = Auth(self.http, self.session)
        self.conversations = ConversationsAPI(self.http)
        self.notices = NoticeBoard(ttl=self.config.notice_ttl)

        self.connection = ConnectionManager(
            self.session,
            transport_factory or websocket_factory(self.config.ws_url or "", self.config.ws_open_timeout),
            max_attempts=self.config.max_reconnect_attempts,
            base_delay=self.config.reconnect_base_delay,
            cap_delay=self.config.reconnect_cap_delay,
            scheduler=scheduler,
        )
        self.engine = ReconciliationEngine(self.connection, self.conversations, notices=self.notices)
        self.http.set_unauthorized_hook(self.engine.invalidate_session)
        self.fallback = FallbackSynchronizer(
            self.connection,
            self.engine.resync,
            interval=self.config.poll_interval,
            debounce=self.config.fetch_debounce,
        )

        self.current_user: Optional[User] = None
        self._pump: Optional[asyncio.Task[None]] = None
        self._roster: Optional[asyncio.Task[None]] = None

    @property
    def store(self) -> MessageStore:
        return self.engine.store

    @property
    def presence(self) -> PresenceTable:
        return self.engine.presence

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def connected(self) -> bool:
        return self.connection.connected

    async def start(self) -> User:
        """Load the current user and roster, then open the realtime channel."""
        if not self.session.has_token:
            raise AuthRequiredError("access_token required. Run the auth flow first.")
        try:
            self.current_user = await self.auth.me()
            await self.refresh_roster()
        except BaseException:
            await self.http.close()
            raise
        self.engine.self_name = self.current_user.username or None
        self._pump = asyncio.create_task(self.engine.run())
        self._roster = asyncio.create_task(self._roster_loop())
        self.fallback.start()
        await self.connection.connect()
        return self.current_user

    async def close(self) -> None:
        await self.fallback.stop()
        for task in (self._pump, self._roster):
            if task is not None:
                task.cancel()
        await asyncio.gather(*(t for t in (self._pump, self._roster) if t is not None), return_exceptions=True)
        self._pump = self._roster = None
        await self.connection.close()
        self.engine.detach()
        await self.http.close()

    async def __aenter__(self) -> "AsyncChatClient":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def refresh_roster(self) -> list[User]:
        users = []
        for record in await self.conversations.users():
            try:
                users.append(User.model_validate(record))
            except ValueError as e:
                logger.warning("Skipping roster entry: %s", e)
        self.presence.load(users)
        return users

    async def _roster_loop(self) -> None:
        while not self.session.invalidated:
            await asyncio.sleep(self.config.roster_interval)
            try:
                await self.refresh_roster()
            except ChatSyncError as e:
                if not self.session.invalidated:
                    self.notices.post(NoticeLevel.WARNING, f"Failed to load users: {e}")

    def select_conversation(self, peer_id: str) -> None:
        if self.engine.select_conversation(peer_id):
            self.fallback.request_fetch()

    def messages(self) -> tuple[Message, ...]:
        return self.store.snapshot()

    async def send(self, text: str) -> Message:
        return await self.engine.send_text(text)

    async def send_file(self, file_path: str, text: str = "") -> Message:
        """Upload a file, then send it as a media message."""
        try:
            upload = await self.conversations.upload(file_path)
        except ChatSyncError as e:
            self.notices.post(NoticeLevel.ERROR, f"Failed to upload file: {e}")
            raise
        return await self.engine.send_media(upload, text)

    async def edit(self, message_id: IdentityLike, text: str) -> bool:
        return await self.engine.edit(as_identity(message_id), text)

    async def delete(self, message_id: IdentityLike) -> bool:
        return await self.engine.delete(as_identity(message_id))

    async def resend(self, message_id: IdentityLike) -> bool:
        identity = ProvisionalId(value=message_id) if isinstance(message_id, str) else message_id
        return await self.engine.resend(identity)

    async def resync(self) -> bool:
        return await self.engine.resync()

    def reconnect(self) -> bool:
        """Manual recovery out of DEGRADED."""
        self.connection.reset()
        return self.connection.ensure_connected()


class ChatClient:
    """Sync wrapper around AsyncChatClient. Runs the event loop internally.

    Background tasks only advance while a call is running. Use `wait()` to
    let inbound frames catch up between calls.
    """

    def __init__(self, access_token: Optional[str] = None, **kwargs: Any):
        self._loop = asyncio.new_event_loop()
        self._async = AsyncChatClient(access_token, **kwargs)

    def _run(self, coro: Any) -> Any:
        return self._loop.run_until_complete(coro)

    @property
    def auth(self) -> Auth:
        return self._async.auth

    @property
    def store(self) -> MessageStore:
        return self._async.store

    @property
    def presence(self) -> PresenceTable:
        return self._async.presence

    @property
    def notices(self) -> NoticeBoard:
        return self._async.notices

    @property
    def state(self) -> ConnectionState:
        return self._async.state

    @property
    def connected(self) -> bool:
        return self._async.connected

    def start(self) -> User:
        return self._run(self._async.start())

    def close(self) -> None:
        try:
            self._run(self._async.close())
        finally:
            self._loop.close()

    def __enter__(self) -> "ChatClient":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def wait(self, seconds: float) -> None:
        """Let background tasks run for `seconds`."""
        self._run(asyncio.sleep(seconds))

    def select_conversation(self, peer_id: str) -> None:
        async def _select() -> None:
            self._async.select_conversation(peer_id)
        self._run(_select())

    def messages(self) -> tuple[Message, ...]:
        return self._async.messages()

    def send(self, text: str) -> Message:
        return self._run(self._async.send(text))

    def send_file(self, file_path: str, text: str = "") -> Message:
        return self._run(self._async.send_file(file_path, text))

    def edit(self, message_id: IdentityLike, text: str) -> bool:
        return self._run(self._async.edit(message_id, text))

    def delete(self, message_id: IdentityLike) -> bool:
        return self._run(self._async.delete(message_id))

    def resend(self, message_id: IdentityLike) -> bool:
        return self._run(self._async.resend(message_id))

    def resync(self) -> bool:
        return self._run(self._async.resync())

    def refresh_roster(self) -> list[User]:
        return self._run(self._async.refresh_roster())

    def reconnect(self) -> bool:
        async def _reconnect() -> bool:
            return self._async.reconnect()
        return self._run(_reconnect())
