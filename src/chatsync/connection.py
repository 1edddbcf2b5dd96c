"""
Connection manager — persistent realtime connection state machine.

    DISCONNECTED -> CONNECTING -> AUTHENTICATING -> CONNECTED
    any failure  -> RECONNECTING -> (timer) -> CONNECTING
    retries exhausted / no token -> DEGRADED (no further automatic retries)

Inbound frames are validated at the boundary and handed to consumers through
`inbound`, an asyncio.Queue, in arrival order.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Protocol, Union

import pydantic

from chatsync.errors import AuthError, AuthRequiredError, FrameValidationError, TransportError
from chatsync.models.frames import AuthFrame, ErrorFrame, Frame
from chatsync.models.session import ConnectionSession, ConnectionState
from chatsync.transport.frames import decode_frame, encode_frame
from chatsync.transport.websocket import Transport, TransportFactory

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_CAP_DELAY_S = 10.0

InboundItem = Union[Frame, FrameValidationError]
StateListener = Callable[[ConnectionState, Optional[Exception]], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def reconnect_delay(attempt: int, base: float = DEFAULT_BASE_DELAY_S, cap: float = DEFAULT_CAP_DELAY_S) -> float:
    """Backoff before reconnection attempt number `attempt` (1-based)."""
    return min(base * (2 ** attempt), cap)


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ConnectionManager:
    def __init__(
        self,
        session: ConnectionSession,
        transport_factory: TransportFactory,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_S,
        cap_delay: float = DEFAULT_CAP_DELAY_S,
        scheduler: Optional[Scheduler] = None,
    ):
        self.session = session
        self.inbound: asyncio.Queue[InboundItem] = asyncio.Queue()
        self._factory = transport_factory
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._cap_delay = cap_delay
        self._scheduler = scheduler or _loop_scheduler
        self._transport: Optional[Transport] = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._timer: Optional[TimerHandle] = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._listeners: list[StateListener] = []
        self._closed = False

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    @property
    def connected(self) -> bool:
        return self.session.state is ConnectionState.CONNECTED

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state-change listener. Returns a cleanup function."""
        self._listeners.append(listener)

        def remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass
        return remove

    # -- external triggers ------------------------------------------------

    async def connect(self) -> None:
        """Open the connection now. Raises AuthRequiredError when there is no usable token."""
        self._closed = False
        self._cancel_timer()
        if self.state in (ConnectionState.CONNECTING, ConnectionState.AUTHENTICATING, ConnectionState.CONNECTED):
            return
        await self._attempt()

    def ensure_connected(self) -> bool:
        """Kick off a connect in the background if nothing is running. Returns True if one was started."""
        if self.session.invalidated:
            return False
        if self.state not in (ConnectionState.DISCONNECTED, ConnectionState.DEGRADED):
            return False
        self._closed = False
        self._spawn(self._attempt())
        return True

    def reset(self) -> None:
        """Manual reset out of DEGRADED."""
        self._cancel_timer()
        self.session.attempts = 0
        if self.state is ConnectionState.DEGRADED:
            self._set_state(ConnectionState.DISCONNECTED)

    def invalidate(self, reason: str) -> None:
        """Auth-class failure: drop the token, stop retrying, close the socket."""
        logger.error("Session invalidated: %s", reason)
        self.session.invalidate()
        self._cancel_timer()
        self._spawn(self._teardown_transport())
        self._set_state(ConnectionState.DEGRADED, AuthError(reason))

    async def close(self) -> None:
        self._closed = True
        self._cancel_timer()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        await self._teardown_transport()
        self._set_state(ConnectionState.DISCONNECTED)

    async def send(self, frame: pydantic.BaseModel) -> bool:
        """Send a frame. Returns False (nothing sent) unless CONNECTED."""
        transport = self._transport
        if self.state is not ConnectionState.CONNECTED or transport is None:
            logger.debug("send(%s) skipped in state %s", getattr(frame, "type", "?"), self.state.value)
            return False
        try:
            await transport.send(encode_frame(frame))
        except Exception as e:
            logger.warning("Send failed: %s", e)
            if transport is self._transport:
                await self._teardown_transport()
                self._handle_failure(e)
            return False
        return True

    # -- state machine ----------------------------------------------------

    async def _attempt(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            transport = await self._factory()
        except Exception as e:
            logger.warning("Connect failed: %s", e)
            self._handle_failure(e)
            return
        if self._closed:
            await transport.close()
            return
        self._transport = transport

        token = self.session.token if self.session.has_token else None
        if token is None:
            error = AuthRequiredError("No session token available for the realtime channel")
            await self._teardown_transport()
            self._cancel_timer()
            self._set_state(ConnectionState.DEGRADED, error)
            raise error

        self._set_state(ConnectionState.AUTHENTICATING)
        try:
            await transport.send(encode_frame(AuthFrame(token=token)))
        except Exception as e:
            logger.warning("Auth send failed: %s", e)
            await self._teardown_transport()
            self._handle_failure(e)
            return
        self._reader = asyncio.create_task(self._read_loop(transport))

    async def _read_loop(self, transport: Transport) -> None:
        try:
            while True:
                raw = await transport.recv()
                try:
                    frame = decode_frame(raw)
                except FrameValidationError as e:
                    logger.warning("Dropping invalid frame: %s", e)
                    self.inbound.put_nowait(e)
                    continue
                if self.state is ConnectionState.AUTHENTICATING and not isinstance(frame, ErrorFrame):
                    self.session.attempts = 0
                    self._set_state(ConnectionState.CONNECTED)
                self.inbound.put_nowait(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if transport is self._transport:
                logger.warning("Connection lost: %s", e)
                await self._teardown_transport()
                self._handle_failure(e)

    def _handle_failure(self, error: Exception) -> None:
        if self._closed or self.state is ConnectionState.DEGRADED:
            return
        if self.session.attempts >= self._max_attempts:
            logger.error("Giving up after %d reconnection attempts", self.session.attempts)
            self._set_state(
                ConnectionState.DEGRADED,
                TransportError(f"Failed to reconnect after {self.session.attempts} attempts"),
            )
            return
        self.session.attempts += 1
        delay = reconnect_delay(self.session.attempts, self._base_delay, self._cap_delay)
        logger.info("Scheduling reconnect in %.1fs (attempt %d)", delay, self.session.attempts)
        self._set_state(ConnectionState.RECONNECTING, error)
        self._cancel_timer()
        self._timer = self._scheduler(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._closed or self.state is not ConnectionState.RECONNECTING:
            return
        self._spawn(self._attempt())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _teardown_transport(self) -> None:
        transport, self._transport = self._transport, None
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug("Transport close failed: %s", e)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: "asyncio.Task[Any]") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, AuthError):
            logger.error("Connection task failed: %s", error)

    def _set_state(self, state: ConnectionState, error: Optional[Exception] = None) -> None:
        if state is self.session.state and error is None:
            return
        logger.info("Connection %s -> %s", self.session.state.value, state.value)
        self.session.state = state
        for listener in list(self._listeners):
            listener(state, error)
