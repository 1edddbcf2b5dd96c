"""
Auth REST calls — the boundary to the external login flow.
"""

from typing import Any, Optional

from chatsync.errors import AuthError, ChatSyncError
from chatsync.models.session import ConnectionSession
from chatsync.models.user import User
from chatsync.transport.http import HttpClient


class Auth:
    def __init__(self, http: HttpClient, session: ConnectionSession):
        self._http = http
        self._session = session

    async def login(self, email: str, password: str) -> str:
        """Exchange credentials for an access token and install it on the session."""
        try:
            result = await self._http.post("/login", {"email": email, "password": password}, authenticated=False)
        except ChatSyncError as e:
            raise AuthError(f"Login failed: {e}")
        token = (result or {}).get("access_token")
        if not token:
            raise AuthError("Login response carried no access token")
        self._session.renew(token)
        return token

    async def signup(self, username: str, email: str, password: str) -> Optional[str]:
        try:
            result: dict[str, Any] = await self._http.post(
                "/signup", {"username": username, "email": email, "password": password}, authenticated=False,
            ) or {}
        except ChatSyncError as e:
            raise AuthError(f"Signup failed: {e}")
        token = result.get("access_token")
        if token:
            self._session.renew(token)
        return token

    async def me(self) -> User:
        """Current user. A malformed id is treated as an auth failure."""
        data = await self._http.get("/users/me")
        try:
            user = User.model_validate(data)
        except ValueError as e:
            raise AuthError(f"Invalid user data received: {e}")
        self._session.user_id = user.id
        return user
