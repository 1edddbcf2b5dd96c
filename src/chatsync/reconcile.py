"""
Reconciliation engine — merges local optimistic intent with server events.

Local intents (send/edit/delete) mutate the MessageStore first, then go out
over the realtime channel, or over REST when the channel is down. Inbound
frames are consumed from the ConnectionManager queue in arrival order and
merged through the same path as REST snapshots.

Every store mutation is a synchronous call on the event loop thread, so
mutations never interleave.
"""

import logging
from typing import Any, Callable, Iterable, Optional

import pydantic

from chatsync.connection import ConnectionManager, InboundItem
from chatsync.conversations import ConversationsAPI
from chatsync.errors import AuthError, ChatSyncError, ForbiddenError, FrameValidationError, NotFoundError, ValidationError
from chatsync.models.frames import (
    ConnectionFrame,
    DeleteFrame,
    EditFrame,
    ErrorFrame,
    MessageFrame,
    UserStatusFrame,
)
from chatsync.models.message import (
    CanonicalId,
    DeliveryStatus,
    Media,
    Message,
    MessageIdentity,
    ProvisionalId,
    UploadDescriptor,
    infer_media_kind,
    is_valid_id,
    new_provisional_id,
    utcnow,
)
from chatsync.models.session import ConnectionState
from chatsync.notices import NoticeBoard, NoticeLevel
from chatsync.presence import PresenceTable
from chatsync.store import MessageStore, StoreResult

logger = logging.getLogger(__name__)

# Server error texts that mean the session token is no longer valid
AUTH_ERROR_PHRASES = ("Invalid token", "User not found")


def is_auth_error_text(text: str) -> bool:
    return any(phrase in text for phrase in AUTH_ERROR_PHRASES)


class ReconciliationEngine:
    def __init__(
        self,
        connection: ConnectionManager,
        conversations: ConversationsAPI,
        *,
        store: Optional[MessageStore] = None,
        presence: Optional[PresenceTable] = None,
        notices: Optional[NoticeBoard] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        self.store = store if store is not None else MessageStore()
        self.presence = presence if presence is not None else PresenceTable()
        self.notices = notices if notices is not None else NoticeBoard()
        self._connection = connection
        self._api = conversations
        self._clock = clock
        self._peer_id: Optional[str] = None
        self.self_name: Optional[str] = None  # shown on local sends until the echo arrives
        self._remove_listener = connection.add_listener(self._on_state)

    @property
    def self_id(self) -> Optional[str]:
        return self._connection.session.user_id

    @property
    def peer_id(self) -> Optional[str]:
        return self._peer_id

    @property
    def conversation(self) -> Optional[tuple[str, str]]:
        if self.self_id is None or self._peer_id is None:
            return None
        return (self.self_id, self._peer_id)

    def select_conversation(self, peer_id: str) -> bool:
        """Switch the active pair. Returns True if the conversation changed."""
        if not is_valid_id(peer_id):
            raise ValidationError(f"Malformed user id: {peer_id!r}")
        if peer_id == self._peer_id:
            return False
        logger.info("Active conversation -> %s", peer_id)
        self._peer_id = peer_id
        self.store.clear()
        return True

    def detach(self) -> None:
        self._remove_listener()

    # -- local intents ----------------------------------------------------

    async def send_text(self, text: str) -> Message:
        text = text.strip()
        if not text:
            raise ValidationError("Cannot send an empty message")
        return await self._send(text=text, media=None)

    async def send_media(self, upload: UploadDescriptor, text: str = "") -> Message:
        return await self._send(text=text.strip() or None, media=upload.to_media())

    async def resend(self, identity: MessageIdentity) -> bool:
        """Retry delivery of a failed provisional message."""
        message = self.store.get(identity)
        if message is None or not isinstance(identity, ProvisionalId):
            return False
        self.store.set_status(identity, DeliveryStatus.PENDING)
        return await self._deliver(identity, self._outbound_frame(message, identity))

    async def edit(self, identity: MessageIdentity, text: str) -> bool:
        text = text.strip()
        if not text:
            raise ValidationError("Cannot edit message. Text cannot be empty.")
        if not isinstance(identity, CanonicalId):
            raise ValidationError("Cannot edit a message the server has not confirmed yet")
        prior = self.store.get(identity)
        if prior is None:
            return False

        self.store.apply_edit(identity, text, self._clock())
        if await self._connection.send(EditFrame(message_id=identity.value, text=text)):
            return True

        self.notices.post(NoticeLevel.WARNING, "Connection lost. Saving edit via API...")
        try:
            await self._api.update_message(identity.value, text)
        except ChatSyncError as e:
            self.store.restore(identity, prior.text, prior.edited, prior.edited_at)
            self._report_fallback_failure("edit", e)
            self._connection.ensure_connected()
            return False
        await self.resync()
        return True

    async def delete(self, identity: MessageIdentity) -> bool:
        if not isinstance(identity, CanonicalId):
            raise ValidationError("Cannot delete a message the server has not confirmed yet")
        prior = self.store.get(identity)
        if prior is None:
            return False
        self.store.remove(identity)
        if await self._connection.send(DeleteFrame(message_id=identity.value)):
            return True

        self.notices.post(NoticeLevel.WARNING, "Connection lost. Deleting via API...")
        try:
            await self._api.delete_message(identity.value)
        except ChatSyncError as e:
            self._report_fallback_failure("delete", e)
            # Refetch the conversation; put the local copy back only if that fails too
            if not await self.resync() and prior.id not in self.store:
                self.store.upsert(prior)
            self._connection.ensure_connected()
            return False
        await self.resync()
        return True

    async def _send(self, text: Optional[str], media: Optional[Media]) -> Message:
        pair = self.conversation
        if pair is None:
            raise ValidationError("Select a conversation before sending")
        self_id, peer_id = pair
        identity = new_provisional_id()
        message = Message(
            id=identity,
            sender_id=self_id,
            receiver_id=peer_id,
            sender_name=self.self_name,
            text=text,
            media=media,
            created_at=self._clock(),
            status=DeliveryStatus.PENDING,
        )
        self.store.upsert(message)
        await self._deliver(identity, self._outbound_frame(message, identity))
        return message

    async def _deliver(self, identity: ProvisionalId, frame: MessageFrame) -> bool:
        if await self._connection.send(frame):
            return True
        self.store.set_status(identity, DeliveryStatus.FAILED)
        self.notices.post(NoticeLevel.WARNING, "Connection lost. Trying to reconnect...")
        self._connection.ensure_connected()
        return False

    @staticmethod
    def _outbound_frame(message: Message, identity: ProvisionalId) -> MessageFrame:
        media = message.media
        return MessageFrame(
            receiver_id=message.receiver_id,
            text=message.text or "",
            media_url=media.url if media else None,
            media_type=media.kind if media else None,
            file_name=media.filename if media else None,
            temp_id=identity.value,
        )

    # -- inbound ----------------------------------------------------------

    async def run(self) -> None:
        """Consume the connection's inbound queue forever."""
        while True:
            item = await self._connection.inbound.get()
            try:
                self.handle(item)
            except Exception:
                logger.exception("Failed to apply inbound frame %r", item)

    def handle(self, item: InboundItem) -> None:
        if isinstance(item, FrameValidationError):
            self.notices.post(NoticeLevel.WARNING, "Invalid message received from server.")
        elif isinstance(item, MessageFrame):
            self._merge_message(item)
        elif isinstance(item, EditFrame):
            self._on_edit(item)
        elif isinstance(item, DeleteFrame):
            self._on_delete(item)
        elif isinstance(item, UserStatusFrame):
            self._on_presence(item)
        elif isinstance(item, ConnectionFrame):
            logger.info("Server connection status: %s", item.status)
        elif isinstance(item, ErrorFrame):
            self._on_error(item)
        else:
            logger.warning("Unhandled frame type: %s", getattr(item, "type", item))

    def _merge_message(self, frame: MessageFrame, quiet: bool = False) -> Optional[StoreResult]:
        def reject(reason: str) -> None:
            logger.warning("Dropping message event: %s", reason)
            if not quiet:
                self.notices.post(NoticeLevel.WARNING, "Received invalid message data.")

        if not is_valid_id(frame.sender_id) or not is_valid_id(frame.receiver_id):
            reject(f"bad participants {frame.sender_id!r} -> {frame.receiver_id!r}")
            return None
        pair = self.conversation
        if pair is None or (frame.sender_id, frame.receiver_id) not in (pair, pair[::-1]):
            logger.debug("Message for another conversation ignored: %s -> %s", frame.sender_id, frame.receiver_id)
            return None

        supersedes: Optional[ProvisionalId] = None
        identity: MessageIdentity
        if frame.message_id is not None:
            if not is_valid_id(frame.message_id):
                reject(f"malformed message id {frame.message_id!r}")
                return None
            identity = CanonicalId(value=frame.message_id)
            status = DeliveryStatus.CONFIRMED
            if frame.temp_id:
                supersedes = ProvisionalId(value=frame.temp_id)
            elif quiet and identity not in self.store:
                supersedes = self._find_placeholder(frame)
        elif frame.temp_id:
            identity = ProvisionalId(value=frame.temp_id)
            status = DeliveryStatus.PENDING
        else:
            reject("no message identity")
            return None

        media = None
        if frame.media_url:
            media = Media(
                url=frame.media_url,
                kind=frame.media_type or infer_media_kind(frame.media_url),
                filename=frame.file_name,
            )
        message = Message(
            id=identity,
            sender_id=frame.sender_id,  # type: ignore[arg-type]
            receiver_id=frame.receiver_id,
            text=frame.text,
            media=media,
            sender_name=frame.sender_name,
            created_at=frame.created_at or self._clock(),
            edited=bool(frame.edited),
            status=status,
        )
        result = self.store.upsert(message, supersedes)
        logger.debug("Message %s: %s", identity.value, result.value)
        return result

    def _find_placeholder(self, frame: MessageFrame) -> Optional[ProvisionalId]:
        """Oldest pending local message with the same body, for history records that lost their temp_id."""
        if frame.sender_id != self.self_id:
            return None
        for message in self.store.snapshot():
            if (
                isinstance(message.id, ProvisionalId)
                and message.status is DeliveryStatus.PENDING
                and message.receiver_id == frame.receiver_id
                and (message.text or "") == (frame.text or "")
                and (message.media.url if message.media else None) == frame.media_url
            ):
                return message.id
        return None

    def _on_edit(self, frame: EditFrame) -> None:
        if not is_valid_id(frame.message_id):
            logger.warning("Dropping edit with malformed id %r", frame.message_id)
            return
        result = self.store.apply_edit(CanonicalId(value=frame.message_id), frame.text, frame.edited_at or self._clock())
        if result is StoreResult.NOT_FOUND:
            logger.debug("Edit target %s not found", frame.message_id)

    def _on_delete(self, frame: DeleteFrame) -> None:
        if not is_valid_id(frame.message_id):
            logger.warning("Dropping delete with malformed id %r", frame.message_id)
            return
        if self.store.remove(CanonicalId(value=frame.message_id)) is StoreResult.NOT_FOUND:
            logger.debug("Delete target %s not found", frame.message_id)

    def _on_presence(self, frame: UserStatusFrame) -> None:
        if not is_valid_id(frame.user_id):
            logger.warning("Dropping presence with malformed id %r", frame.user_id)
            return
        self.presence.apply(frame.user_id, frame.is_online)

    def _on_error(self, frame: ErrorFrame) -> None:
        if is_auth_error_text(frame.error):
            self.invalidate_session(frame.error)
        else:
            self.notices.post(NoticeLevel.ERROR, frame.error or "Server reported an error.")

    def _on_state(self, state: ConnectionState, error: Optional[Exception]) -> None:
        if error is None or isinstance(error, AuthError):
            return
        if state is ConnectionState.RECONNECTING:
            self.notices.post(NoticeLevel.WARNING, "Connection error. Attempting to reconnect...")
        elif state is ConnectionState.DEGRADED:
            self.notices.post(NoticeLevel.ERROR, "Failed to reconnect. Polling enabled to keep messages updated.")

    # -- full resynchronization -------------------------------------------

    def merge_snapshot(
        self, records: Iterable[dict[str, Any]], prune_among: Optional[Iterable[MessageIdentity]] = None,
    ) -> int:
        """Merge a full conversation fetch through the inbound path. Returns the number of records applied."""
        applied = 0
        seen: list[CanonicalId] = []
        for record in records:
            try:
                frame = MessageFrame.model_validate({**record, "type": "message"})
            except (pydantic.ValidationError, TypeError) as e:
                logger.warning("Skipping malformed history record: %s", e)
                continue
            if self._merge_message(frame, quiet=True) is not None:
                applied += 1
                if frame.message_id:
                    seen.append(CanonicalId(value=frame.message_id))
        dropped = self.store.retain(seen, among=prune_among)
        if dropped:
            logger.info("Snapshot removed %d message(s) deleted upstream", dropped)
        return applied

    async def resync(self) -> bool:
        """Fetch the active conversation over REST and merge it."""
        pair = self.conversation
        if pair is None:
            return False
        existing = [m.id for m in self.store.snapshot() if not m.is_provisional]
        try:
            records = await self._api.history(*pair)
        except AuthError as e:
            self.invalidate_session(str(e))
            return False
        except ForbiddenError:
            self.notices.post(NoticeLevel.ERROR, "Access denied to this conversation.")
            return False
        except NotFoundError:
            self.notices.post(NoticeLevel.WARNING, "One or both users not found. Please select a valid user.")
            return False
        except ChatSyncError as e:
            logger.warning("History fetch failed: %s", e)
            self.notices.post(NoticeLevel.WARNING, "Failed to load messages. Please try again.")
            return False
        if self.conversation != pair:
            logger.debug("Discarding history for %s; conversation changed", pair)
            return False
        self.merge_snapshot(records, prune_among=existing)
        return True

    def invalidate_session(self, reason: str) -> None:
        if self._connection.session.invalidated:
            return
        self._connection.invalidate(reason)
        self.notices.post(NoticeLevel.AUTH, "Session expired. Please log in again.")

    def _report_fallback_failure(self, action: str, error: ChatSyncError) -> None:
        if isinstance(error, AuthError):
            self.invalidate_session(str(error))
            return
        self.notices.post(NoticeLevel.ERROR, f"Failed to {action} message: {error}")
