import pytest
import pytest_asyncio

from chatsync.connection import ConnectionManager
from chatsync.models.session import ConnectionSession
from chatsync.reconcile import ReconciliationEngine

from fakes import ME, PEER, FakeConversations, FakeFactory, FakeScheduler, settle


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def session() -> ConnectionSession:
    return ConnectionSession(token="tok-123", user_id=ME)


@pytest.fixture
def connection(session, factory, scheduler) -> ConnectionManager:
    return ConnectionManager(session, factory, scheduler=scheduler)


@pytest.fixture
def api() -> FakeConversations:
    return FakeConversations()


@pytest.fixture
def engine(connection, api) -> ReconciliationEngine:
    eng = ReconciliationEngine(connection, api)
    eng.select_conversation(PEER)
    return eng


@pytest_asyncio.fixture
async def online(connection, factory):
    """A connection that completed the auth handshake."""
    await connection.connect()
    factory.last.push({"type": "connection", "status": "connected"})
    await settle()
    while not connection.inbound.empty():
        connection.inbound.get_nowait()
    yield connection
    await connection.close()
