"""
Realtime frame schema — one JSON object per WebSocket frame, tagged by `type`.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class FrameType:
    AUTH = "auth"
    MESSAGE = "message"
    EDIT = "edit"
    DELETE = "delete"
    USER_STATUS = "user_status"
    CONNECTION = "connection"
    ERROR = "error"


class AuthFrame(BaseModel):
    """C2S only."""
    type: Literal["auth"] = "auth"
    token: str


class MessageFrame(BaseModel):
    type: Literal["message"] = "message"
    sender_id: Optional[str] = None      # absent on C2S; server fills it in
    receiver_id: str
    text: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    file_name: Optional[str] = None
    message_id: Optional[str] = None
    temp_id: Optional[str] = None
    sender_name: Optional[str] = None
    created_at: Optional[datetime] = None
    edited: Optional[bool] = None


class EditFrame(BaseModel):
    type: Literal["edit"] = "edit"
    message_id: str
    text: str
    edited_at: Optional[datetime] = None


class DeleteFrame(BaseModel):
    type: Literal["delete"] = "delete"
    message_id: str


class UserStatusFrame(BaseModel):
    type: Literal["user_status"] = "user_status"
    user_id: str
    is_online: bool


class ConnectionFrame(BaseModel):
    """Informational."""
    type: Literal["connection"] = "connection"
    status: str = ""


class ErrorFrame(BaseModel):
    type: Literal["error"] = "error"
    error: str = ""


Frame = Annotated[
    Union[AuthFrame, MessageFrame, EditFrame, DeleteFrame, UserStatusFrame, ConnectionFrame, ErrorFrame],
    Field(discriminator="type"),
]

FRAME_ADAPTER: TypeAdapter[Frame] = TypeAdapter(Frame)
