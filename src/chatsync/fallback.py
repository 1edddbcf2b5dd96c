"""
Fallback synchronizer — bounds staleness while the realtime channel is down.

- Poll: every `interval` seconds, if the connection is not CONNECTED, run a
  full conversation fetch.
- Debounce: `request_fetch()` bursts (rapid conversation switches) collapse
  into one fetch, `debounce` seconds after the last request.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from chatsync.connection import ConnectionManager
from chatsync.models.session import ConnectionState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 5.0
DEFAULT_DEBOUNCE_S = 0.5


class FallbackSynchronizer:
    def __init__(
        self,
        connection: ConnectionManager,
        fetch: Callable[[], Awaitable[Any]],
        *,
        interval: float = DEFAULT_POLL_INTERVAL_S,
        debounce: float = DEFAULT_DEBOUNCE_S,
    ):
        self._connection = connection
        self._fetch = fetch
        self._interval = interval
        self._debounce = debounce
        self._poller: Optional[asyncio.Task[None]] = None
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._inflight: Optional[asyncio.Task[None]] = None
        self.fetch_count = 0

    @property
    def running(self) -> bool:
        return self._poller is not None and not self._poller.done()

    def start(self) -> None:
        if not self.running:
            self._poller = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        tasks = [t for t in (self._poller, self._inflight, *self._tasks) if t is not None]
        self._poller = self._inflight = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def request_fetch(self) -> None:
        """Debounced fetch request."""
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(self._debounce, self._fire)

    async def fetch_now(self) -> None:
        """Run one fetch. Callers arriving while one is in flight wait for that one."""
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_fetch())
            self._inflight.add_done_callback(self._fetch_done)
        await asyncio.shield(self._inflight)

    def _fetch_done(self, task: "asyncio.Task[None]") -> None:
        if self._inflight is task:
            self._inflight = None

    async def _run_fetch(self) -> None:
        self.fetch_count += 1
        try:
            await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Fallback fetch failed: %s", e)

    def _fire(self) -> None:
        self._debounce_handle = None
        task = asyncio.ensure_future(self.fetch_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._connection.session.invalidated:
                logger.info("Session invalidated, polling stopped")
                return
            state = self._connection.state
            if state is not ConnectionState.CONNECTED:
                logger.info("Realtime channel %s, polling conversation", state.value)
                await self.fetch_now()
