"""
WebSocket transport — one JSON text frame per message.

Wraps a `websockets` client connection behind the small Transport protocol the
ConnectionManager consumes, so tests can swap in an in-memory transport.
"""

import logging
from typing import Awaitable, Callable, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chatsync.errors import TransportError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, data: str) -> None: ...

    async def recv(self) -> Union[str, bytes]: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[], Awaitable[Transport]]


class WebSocketTransport:
    def __init__(self, ws: "websockets.ClientConnection"):
        self._ws = ws

    @classmethod
    async def open(cls, url: str, open_timeout: float = 10.0) -> "WebSocketTransport":
        try:
            ws = await websockets.connect(url, open_timeout=open_timeout, ping_interval=20, ping_timeout=20)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise TransportError(f"Could not open {url}: {e}") from e
        logger.debug("WebSocket open: %s", url)
        return cls(ws)

    async def send(self, data: str) -> None:
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise TransportError(f"Send on closed socket: {e}") from e

    async def recv(self) -> Union[str, bytes]:
        try:
            return await self._ws.recv()
        except ConnectionClosed as e:
            raise TransportError(f"Socket closed: {e}") from e

    async def close(self) -> None:
        await self._ws.close()


def websocket_factory(url: str, open_timeout: float = 10.0) -> TransportFactory:
    async def factory() -> Transport:
        return await WebSocketTransport.open(url, open_timeout=open_timeout)
    return factory
