"""
Conversations REST API — history, edit/delete confirmation, upload, roster.
"""

from typing import Any

from chatsync.errors import ValidationError
from chatsync.models.message import UploadDescriptor, is_valid_id
from chatsync.transport.http import HttpClient


def _require_id(value: str, what: str) -> None:
    if not is_valid_id(value):
        raise ValidationError(f"Malformed {what}: {value!r}")


class ConversationsAPI:
    def __init__(self, http: HttpClient):
        self._http = http

    async def history(self, user_a: str, user_b: str) -> list[dict[str, Any]]:
        """Full message history between two users, as raw records."""
        _require_id(user_a, "user id")
        _require_id(user_b, "user id")
        result = await self._http.get(f"/messages/{user_a}/{user_b}")
        return result if isinstance(result, list) else []

    async def update_message(self, message_id: str, text: str) -> Any:
        _require_id(message_id, "message id")
        return await self._http.put(f"/messages/{message_id}", {"text": text.strip()})

    async def delete_message(self, message_id: str) -> Any:
        _require_id(message_id, "message id")
        return await self._http.delete(f"/messages/{message_id}")

    async def upload(self, file_path: str) -> UploadDescriptor:
        return UploadDescriptor.model_validate(await self._http.upload("/upload", file_path))

    async def users(self) -> list[dict[str, Any]]:
        result = await self._http.get("/users")
        return result if isinstance(result, list) else []
