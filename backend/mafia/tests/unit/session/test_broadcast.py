from unittest.mock import AsyncMock

from mafia.session.broadcast import ConnectionHub
from mafia.tests.mocks import MockConnection


def _hub_with(*connection_ids: str) -> tuple[ConnectionHub, dict[str, MockConnection]]:
    hub = ConnectionHub()
    conns = {cid: MockConnection(cid) for cid in connection_ids}
    for conn in conns.values():
        hub.register(conn)
    return hub, conns


class TestConnectionHub:
    async def test_broadcast_reaches_room_subscribers_only(self):
        hub, conns = _hub_with("a", "b", "c")
        hub.subscribe("ABC234", "a")
        hub.subscribe("ABC234", "b")
        hub.subscribe("XYZ789", "c")

        await hub.broadcast("ABC234", {"type": "roster_changed"})
        assert conns["a"].sent_messages == [{"type": "roster_changed"}]
        assert conns["b"].sent_messages == [{"type": "roster_changed"}]
        assert conns["c"].sent_messages == []

    async def test_broadcast_exclude(self):
        hub, conns = _hub_with("a", "b")
        hub.subscribe("ABC234", "a")
        hub.subscribe("ABC234", "b")
        await hub.broadcast("ABC234", {"type": "x"}, exclude="a")
        assert conns["a"].sent_messages == []
        assert len(conns["b"].sent_messages) == 1

    async def test_subscription_order(self):
        hub, _ = _hub_with("b", "a", "c")
        for cid in ("c", "a", "b"):
            hub.subscribe("ABC234", cid)
        assert hub.subscribers("ABC234") == ["c", "a", "b"]

    async def test_subscribe_moves_between_rooms(self):
        hub, _ = _hub_with("a")
        hub.subscribe("ABC234", "a")
        hub.subscribe("XYZ789", "a")
        assert hub.subscribers("ABC234") == []
        assert hub.subscribers("XYZ789") == ["a"]

    async def test_send_failure_is_suppressed_per_connection(self):
        hub, conns = _hub_with("a", "b")
        await conns["a"].close()
        hub.subscribe("ABC234", "a")
        hub.subscribe("ABC234", "b")

        await hub.broadcast("ABC234", {"type": "x"})
        assert len(conns["b"].sent_messages) == 1

    async def test_send_to(self):
        hub, conns = _hub_with("a")
        assert await hub.send_to("a", {"type": "x"}) is True
        assert await hub.send_to("missing", {"type": "x"}) is False
        conns["a"].send_bytes = AsyncMock(side_effect=ConnectionError("gone"))
        assert await hub.send_to("a", {"type": "x"}) is False

    async def test_unregister_drops_subscription(self):
        hub, _ = _hub_with("a")
        hub.subscribe("ABC234", "a")
        assert hub.unregister("a") == "ABC234"
        assert hub.connection_count == 0
        assert hub.subscribers("ABC234") == []

    async def test_unsubscribe_room(self):
        hub, _ = _hub_with("a", "b")
        hub.subscribe("ABC234", "a")
        hub.subscribe("ABC234", "b")
        assert hub.unsubscribe_room("ABC234") == ["a", "b"]
        assert hub.unsubscribe("a") is None
        assert hub.connection_count == 2
