"""
User model — roster entries and presence.
"""

from typing import Optional
from pydantic import BaseModel, field_validator

from chatsync.models.message import is_valid_id


class User(BaseModel):
    id: str
    username: str = ""
    email: Optional[str] = None
    is_online: bool = False

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not is_valid_id(value):
            raise ValueError(f"malformed user id: {value!r}")
        return value

    @property
    def display_name(self) -> str:
        return self.username or self.email or self.id
