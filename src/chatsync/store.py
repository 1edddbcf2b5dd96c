"""
Message store — ordered, deduplicated message log for the active conversation.

Ordering:
- Entries sort by (created_at, insertion sequence).
- The sort key is fixed when an entry is inserted; later merges update the
  message fields but never move an entry that is already displayed.

Identity:
- A provisional entry is promoted in place when its canonical id arrives.
- A canonical id is never stored twice; repeats are field-merged.
"""

import bisect
import itertools
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from chatsync.models.message import CanonicalId, DeliveryStatus, Message, MessageIdentity, ProvisionalId


class StoreResult(str, Enum):
    INSERTED = "inserted"
    MERGED = "merged"
    PROMOTED = "promoted"
    APPLIED = "applied"
    NOT_FOUND = "not_found"


class _Entry:
    __slots__ = ("key", "message")

    def __init__(self, key: tuple[datetime, int], message: Message):
        self.key = key
        self.message = message

    def __lt__(self, other: "_Entry") -> bool:
        return self.key < other.key


def _merge(existing: Message, incoming: Message) -> Message:
    """Incoming non-null fields win; `edited` never flips back to False."""
    update: dict[str, Any] = {}
    for name in Message.model_fields:
        value = getattr(incoming, name)
        if value is not None:
            update[name] = value
    update["edited"] = existing.edited or incoming.edited
    if existing.status is DeliveryStatus.CONFIRMED:
        update["status"] = DeliveryStatus.CONFIRMED
    return existing.model_copy(update=update)


class MessageStore:
    def __init__(self) -> None:
        self._entries: list[_Entry] = []
        self._index: dict[MessageIdentity, _Entry] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._index

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    def get(self, identity: MessageIdentity) -> Optional[Message]:
        entry = self._index.get(identity)
        return entry.message if entry else None

    def snapshot(self) -> tuple[Message, ...]:
        """Ordered view for rendering."""
        return tuple(e.message for e in self._entries)

    def upsert(self, message: Message, supersedes: Optional[ProvisionalId] = None) -> StoreResult:
        existing = self._index.get(message.id)
        placeholder = self._index.get(supersedes) if supersedes is not None else None

        if existing is not None:
            if placeholder is not None and placeholder is not existing:
                # Echo already arrived through a snapshot; drop the placeholder copy
                self._drop(placeholder)
            existing.message = _merge(existing.message, message)
            return StoreResult.MERGED

        if placeholder is not None:
            del self._index[placeholder.message.id]
            placeholder.message = _merge(placeholder.message, message)
            self._index[placeholder.message.id] = placeholder
            return StoreResult.PROMOTED

        entry = _Entry((message.created_at, next(self._seq)), message)
        bisect.insort(self._entries, entry)
        self._index[message.id] = entry
        return StoreResult.INSERTED

    def apply_edit(self, identity: MessageIdentity, text: str, edited_at: datetime) -> StoreResult:
        entry = self._index.get(identity)
        if entry is None:
            return StoreResult.NOT_FOUND
        entry.message = entry.message.model_copy(update={"text": text, "edited": True, "edited_at": edited_at})
        return StoreResult.APPLIED

    def restore(
        self, identity: MessageIdentity, text: Optional[str], edited: bool, edited_at: Optional[datetime],
    ) -> StoreResult:
        """Put back the exact pre-edit body of a message."""
        entry = self._index.get(identity)
        if entry is None:
            return StoreResult.NOT_FOUND
        entry.message = entry.message.model_copy(update={"text": text, "edited": edited, "edited_at": edited_at})
        return StoreResult.APPLIED

    def set_status(self, identity: MessageIdentity, status: DeliveryStatus) -> StoreResult:
        entry = self._index.get(identity)
        if entry is None:
            return StoreResult.NOT_FOUND
        entry.message = entry.message.model_copy(update={"status": status})
        return StoreResult.APPLIED

    def remove(self, identity: MessageIdentity) -> StoreResult:
        entry = self._index.get(identity)
        if entry is None:
            return StoreResult.NOT_FOUND
        self._drop(entry)
        return StoreResult.APPLIED

    def retain(self, canonical_ids: Iterable[CanonicalId], among: Optional[Iterable[MessageIdentity]] = None) -> int:
        """Drop canonical entries absent from a full snapshot. Returns how many were dropped.

        `among` limits pruning to entries that existed when the snapshot was
        requested; anything merged while the fetch was in flight is kept.
        """
        keep = set(canonical_ids)
        candidates = set(among) if among is not None else None
        stale = [
            e for e in self._entries
            if isinstance(e.message.id, CanonicalId)
            and e.message.id not in keep
            and (candidates is None or e.message.id in candidates)
        ]
        for entry in stale:
            self._drop(entry)
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self._index.clear()

    def _drop(self, entry: _Entry) -> None:
        self._index.pop(entry.message.id, None)
        self._entries.remove(entry)
