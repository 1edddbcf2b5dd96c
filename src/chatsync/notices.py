"""
User-visible notices. Transient ones auto-clear; AUTH notices stay until cleared.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from chatsync.models.message import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_S = 5.0

_LOG_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "auth": logging.ERROR,
}


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    AUTH = "auth"   # terminal: re-authentication required


class Notice(BaseModel):
    level: NoticeLevel
    message: str
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def terminal(self) -> bool:
        return self.level is NoticeLevel.AUTH


class NoticeBoard:
    def __init__(self, ttl: float = DEFAULT_TTL_S, history_size: int = 50):
        self._ttl = ttl
        self._current: Optional[Notice] = None
        self._clear_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: list[Callable[[Optional[Notice]], None]] = []
        self.history: deque[Notice] = deque(maxlen=history_size)

    @property
    def current(self) -> Optional[Notice]:
        return self._current

    def add_listener(self, listener: Callable[[Optional[Notice]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    def post(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        logger.log(_LOG_LEVELS[level.value], "%s", message)
        # A terminal notice is not displaced by later transient ones
        if self._current is not None and self._current.terminal and not notice.terminal:
            self.history.append(notice)
            return notice
        self._cancel_clear()
        self._current = notice
        self.history.append(notice)
        if not notice.terminal:
            try:
                loop = asyncio.get_running_loop()
                self._clear_handle = loop.call_later(self._ttl, self._expire, notice)
            except RuntimeError:
                pass
        self._notify()
        return notice

    def clear(self) -> None:
        self._cancel_clear()
        if self._current is not None:
            self._current = None
            self._notify()

    def _expire(self, notice: Notice) -> None:
        self._clear_handle = None
        if self._current is notice:
            self._current = None
            self._notify()

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._current)
