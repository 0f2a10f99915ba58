import pytest

from mafia.logic.roles import RoleConfig
from mafia.messaging.router import MessageRouter
from mafia.rooms.registry import RoomRegistry
from mafia.session.bridge import SessionBridge
from mafia.session.broadcast import ConnectionHub
from mafia.tests.helpers.tickets import TEST_SESSION_SECRET
from mafia.tests.mocks import FakeClock, MockConnection


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return RoomRegistry(clock=clock, max_rooms=10)


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
async def bridge(registry, hub):
    bridge = SessionBridge(registry, hub, session_secret=TEST_SESSION_SECRET, disconnect_grace_seconds=60)
    yield bridge
    bridge.shutdown()


@pytest.fixture
def router(bridge):
    return MessageRouter(bridge)


@pytest.fixture
def three_player_config():
    return RoleConfig(mafia=1, doktor=1, civil=1)


@pytest.fixture
def connect(bridge):
    """Factory for registered mock connections."""

    def _connect(connection_id: str | None = None) -> MockConnection:
        conn = MockConnection(connection_id)
        bridge.register_connection(conn)
        return conn

    return _connect
