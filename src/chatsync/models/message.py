"""
Message models — identity union, media reference, delivery status.
"""

import itertools
import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_IMAGE_EXT = re.compile(r"\.(jpg|jpeg|png|gif)$", re.IGNORECASE)
_VIDEO_EXT = re.compile(r"\.(mp4|webm|ogg)$", re.IGNORECASE)

_provisional_seq = itertools.count(1)


def is_valid_id(value: object) -> bool:
    """True for well-formed user and server message identifiers."""
    return isinstance(value, str) and ID_PATTERN.match(value) is not None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ProvisionalId(BaseModel):
    """Locally generated placeholder, retired once the server id is known."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["provisional"] = "provisional"
    value: str


class CanonicalId(BaseModel):
    """Server-issued permanent message id."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["canonical"] = "canonical"
    value: str


MessageIdentity = Union[ProvisionalId, CanonicalId]


def new_provisional_id() -> ProvisionalId:
    return ProvisionalId(value=f"{int(time.time() * 1000)}-{next(_provisional_seq)}")


def infer_media_kind(url: Optional[str]) -> str:
    if url and _IMAGE_EXT.search(url):
        return "image"
    if url and _VIDEO_EXT.search(url):
        return "video"
    return "file"


class Media(BaseModel):
    url: str
    kind: str = "file"   # "image" | "video" | "file"
    filename: Optional[str] = None


class UploadDescriptor(BaseModel):
    """Completed upload as returned by POST /upload."""
    url: str
    media_type: Optional[str] = None
    filename: Optional[str] = None

    def to_media(self) -> Media:
        return Media(url=self.url, kind=self.media_type or infer_media_kind(self.url), filename=self.filename)


class Message(BaseModel):
    id: MessageIdentity = Field(discriminator="kind")
    sender_id: str
    receiver_id: str
    text: Optional[str] = None
    media: Optional[Media] = None
    sender_name: Optional[str] = None
    created_at: datetime
    edited_at: Optional[datetime] = None
    edited: bool = False
    status: DeliveryStatus = DeliveryStatus.PENDING

    @field_validator("created_at", "edited_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Server timestamps may come without an offset
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_provisional(self) -> bool:
        return isinstance(self.id, ProvisionalId)

    def involves(self, user_a: str, user_b: str) -> bool:
        return (self.sender_id, self.receiver_id) in ((user_a, user_b), (user_b, user_a))
