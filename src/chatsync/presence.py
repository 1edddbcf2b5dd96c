"""
Presence table — user id to User with online flag.
"""

import logging
from typing import Iterable, Optional

from chatsync.models.user import User

logger = logging.getLogger(__name__)


class PresenceTable:
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    def get(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def load(self, users: Iterable[User]) -> None:
        """Merge a roster fetch. Users missing from it stay known but go offline."""
        seen: set[str] = set()
        for user in users:
            seen.add(user.id)
            self._users[user.id] = user.model_copy()
        for user_id, user in self._users.items():
            if user_id not in seen and user.is_online:
                user.is_online = False

    def apply(self, user_id: str, is_online: bool) -> bool:
        """Presence event. Never creates users; returns False for unknown ids."""
        user = self._users.get(user_id)
        if user is None:
            logger.debug("Presence for unknown user %s ignored", user_id)
            return False
        user.is_online = is_online
        return True

    def users(self) -> list[User]:
        return sorted(self._users.values(), key=lambda u: u.display_name.lower())

    def online(self) -> list[User]:
        return [u for u in self.users() if u.is_online]
