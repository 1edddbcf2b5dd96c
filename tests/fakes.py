"""In-memory stand-ins for the socket, the reconnect timer and the REST API."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from chatsync.errors import TransportError

ME = "11111111-1111-4111-8111-111111111111"
PEER = "22222222-2222-4222-9222-222222222222"
OTHER = "33333333-3333-4333-a333-333333333333"
M1 = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
M2 = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
M3 = "cccccccc-cccc-4ccc-8ccc-cccccccccccc"

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def message_record(message_id: Optional[str] = M1, text: str = "hello", *, sender: str = ME,
                   receiver: str = PEER, created: float = 0, **extra: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "sender_id": sender,
        "receiver_id": receiver,
        "text": text,
        "created_at": at(created).isoformat(),
    }
    if message_id is not None:
        record["message_id"] = message_id
    record.update(extra)
    return record


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = 0
        self.fail_send = False

    async def send(self, data: str) -> None:
        if self.fail_send:
            raise TransportError("broken pipe")
        self.sent.append(json.loads(data))

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed += 1

    def push(self, frame: Any) -> None:
        self.incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self) -> None:
        self.incoming.put_nowait(TransportError("connection reset"))


class FakeFactory:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.fail = False
        self.calls = 0

    async def __call__(self) -> FakeTransport:
        self.calls += 1
        if self.fail:
            raise TransportError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records reconnect delays; timers fire only when the test says so."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def delays(self) -> list[float]:
        return [t.delay for t in self.timers]

    @property
    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire(self) -> None:
        (timer,) = self.active
        timer.fired = True
        timer.callback()


class FakeConversations:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []
        self.calls: list[tuple[Any, ...]] = []
        self.fail_history: Optional[Exception] = None
        self.fail_update: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    async def history(self, user_a: str, user_b: str) -> list[dict[str, Any]]:
        self.calls.append(("history", user_a, user_b))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_history:
            raise self.fail_history
        return [dict(r) for r in self.records]

    async def update_message(self, message_id: str, text: str) -> dict[str, Any]:
        self.calls.append(("update", message_id, text))
        if self.fail_update:
            raise self.fail_update
        return {"message_id": message_id, "text": text}

    async def delete_message(self, message_id: str) -> None:
        self.calls.append(("delete", message_id))
        if self.fail_delete:
            raise self.fail_delete
