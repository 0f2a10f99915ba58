from collections import Counter
from unittest.mock import AsyncMock

import pytest

from mafia.logic.enums import RoleKind
from mafia.logic.exceptions import (
    AlreadyHostingError,
    AlreadyStartedError,
    CapacityTooSmallError,
    IncompleteRosterError,
    NameTakenError,
    NotHostError,
    NotStartedError,
    PlayerNotFoundError,
    RoomFullError,
    RoomNotFoundError,
    ServerFullError,
)
from mafia.logic.roles import RoleConfig
from mafia.rooms.registry import RoomRegistry
from mafia.tests.mocks import FakeClock

CONFIG = RoleConfig(mafia=1, doktor=1, civil=1)


def _full_room(registry: RoomRegistry, host: str = "host") -> str:
    room = registry.create_room(host, CONFIG)
    for name in ("Ana", "Bojan", "Ceca"):
        registry.join_room(room.code, f"conn-{name}", name)
    return room.code


class TestCreateRoom:
    def test_creates_empty_lobby_room(self, registry):
        room = registry.create_room("host", CONFIG)
        assert room.host_connection_id == "host"
        assert room.players == []
        assert room.started is False
        assert room.capacity == 3
        assert registry.get_room(room.code) is room

    def test_codes_are_unique(self, clock):
        registry = RoomRegistry(clock=clock, max_rooms=50)
        codes = {registry.create_room(f"host-{i}", CONFIG).code for i in range(50)}
        assert len(codes) == 50

    def test_regenerates_on_collision(self, clock):
        # first code AAAAAA, second attempt collides once then draws BBBBBB
        draws = iter([0] * 6 + [0] * 6 + [1] * 6)
        registry = RoomRegistry(clock=clock, randbelow=lambda bound: next(draws))
        assert registry.create_room("h1", CONFIG).code == "AAAAAA"
        assert registry.create_room("h2", CONFIG).code == "BBBBBB"

    def test_one_live_room_per_host(self, registry):
        registry.create_room("host", CONFIG)
        with pytest.raises(AlreadyHostingError):
            registry.create_room("host", CONFIG)

    def test_room_limit(self, clock):
        registry = RoomRegistry(clock=clock, max_rooms=2)
        registry.create_room("h1", CONFIG)
        registry.create_room("h2", CONFIG)
        with pytest.raises(ServerFullError):
            registry.create_room("h3", CONFIG)

    def test_lookup_normalizes_code(self, registry):
        room = registry.create_room("host", CONFIG)
        assert registry.get_room(f"  {room.code.lower()} ") is room

    def test_require_missing_room(self, registry):
        with pytest.raises(RoomNotFoundError):
            registry.require_room("ZZZZZZ")


class TestJoinRoom:
    def test_appends_in_join_order(self, registry):
        code = _full_room(registry)
        assert [p.name for p in registry.get_room(code).players] == ["Ana", "Bojan", "Ceca"]

    def test_join_is_idempotent_per_connection(self, registry):
        room = registry.create_room("host", CONFIG)
        registry.join_room(room.code, "c1", "Ana")
        registry.join_room(room.code, "c1", "Ana")
        registry.join_room(room.code, "c1", "Other name")
        assert room.occupied == 1

    def test_full_room_rejects(self, registry):
        code = _full_room(registry)
        with pytest.raises(RoomFullError):
            registry.join_room(code, "late", "Dado")

    def test_started_room_rejects_newcomers(self, registry):
        code = _full_room(registry)
        registry.start_game(code, "host")
        with pytest.raises(AlreadyStartedError):
            registry.join_room(code, "late", "Dado")

    def test_missing_room(self, registry):
        with pytest.raises(RoomNotFoundError):
            registry.join_room("ZZZZZZ", "c1", "Ana")

    def test_duplicate_name_rejected_case_insensitively(self, registry):
        room = registry.create_room("host", CONFIG)
        registry.join_room(room.code, "c1", "Ana")
        with pytest.raises(NameTakenError):
            registry.join_room(room.code, "c2", "ANA")
        assert room.occupied == 1

    def test_capacity_never_exceeded(self, registry):
        room = registry.create_room("host", RoleConfig(civil=2))
        for i in range(5):
            try:
                registry.join_room(room.code, f"c{i}", f"P{i}")
            except RoomFullError:
                pass
        assert room.occupied == 2


class TestRemoveMember:
    def test_removes_by_connection(self, registry):
        code = _full_room(registry)
        room = registry.remove_member(code, "conn-Bojan")
        assert [p.name for p in room.players] == ["Ana", "Ceca"]

    def test_absent_member_is_noop(self, registry):
        code = _full_room(registry)
        room = registry.remove_member(code, "nobody")
        assert room.occupied == 3

    def test_missing_room_returns_none(self, registry):
        assert registry.remove_member("ZZZZZZ", "c1") is None

    def test_find_member(self, registry):
        code = _full_room(registry)
        assert registry.find_member(code, "conn-Ana").name == "Ana"
        assert registry.find_member(code, "nobody") is None


class TestStartGame:
    def test_deals_configured_roles(self, registry):
        code = _full_room(registry)
        room = registry.start_game(code, "host")
        assert room.started is True
        assert Counter(p.role for p in room.players) == Counter(
            {RoleKind.MAFIA: 1, RoleKind.DOKTOR: 1, RoleKind.CIVIL: 1},
        )

    def test_only_host_can_start(self, registry):
        code = _full_room(registry)
        with pytest.raises(NotHostError):
            registry.start_game(code, "conn-Ana")
        assert registry.get_room(code).started is False

    def test_incomplete_roster_leaves_room_untouched(self, registry):
        room = registry.create_room("host", CONFIG)
        registry.join_room(room.code, "c1", "Ana")
        with pytest.raises(IncompleteRosterError, match="Need exactly 3 players"):
            registry.start_game(room.code, "host")
        assert room.started is False
        assert all(p.role is None for p in room.players)

    def test_cannot_start_twice(self, registry):
        code = _full_room(registry)
        registry.start_game(code, "host")
        with pytest.raises(AlreadyStartedError):
            registry.start_game(code, "host")

    def test_assignment_replaces_roster_in_one_step(self, registry):
        code = _full_room(registry)
        before = registry.get_room(code).players
        room = registry.start_game(code, "host")
        assert room.players is not before
        assert all(p.role is None for p in before)


class TestRestartGame:
    def test_clears_roles_and_returns_to_lobby(self, registry):
        code = _full_room(registry)
        registry.start_game(code, "host")
        room = registry.restart_game(code, "host")
        assert room.started is False
        assert all(p.role is None for p in room.players)
        assert [p.name for p in room.players] == ["Ana", "Bojan", "Ceca"]

    def test_seat_nonces_survive_start_and_restart(self, registry):
        code = _full_room(registry)
        nonces = [p.seat_nonce for p in registry.get_room(code).players]
        assert len(set(nonces)) == 3

        registry.start_game(code, "host")
        assert [p.seat_nonce for p in registry.get_room(code).players] == nonces
        registry.restart_game(code, "host")
        assert [p.seat_nonce for p in registry.get_room(code).players] == nonces

    def test_replaces_config(self, registry):
        code = _full_room(registry)
        new_config = RoleConfig(mafia=1, policajac=1, civil=2)
        room = registry.restart_game(code, "host", new_config)
        assert room.role_config == new_config
        assert room.capacity == 4

    def test_rejects_config_smaller_than_roster(self, registry):
        code = _full_room(registry)
        registry.start_game(code, "host")
        with pytest.raises(CapacityTooSmallError):
            registry.restart_game(code, "host", RoleConfig(mafia=1, civil=1))
        room = registry.get_room(code)
        assert room.started is True
        assert room.role_config == CONFIG

    def test_only_host_can_restart(self, registry):
        code = _full_room(registry)
        with pytest.raises(NotHostError):
            registry.restart_game(code, "conn-Ana")


class TestRevealedRoles:
    def test_host_sees_every_role_in_roster_order(self, registry):
        code = _full_room(registry)
        room = registry.start_game(code, "host")
        revealed = registry.get_revealed_roles(code, "host")
        assert [(r.name, r.role) for r in revealed] == [(p.name, p.role) for p in room.players]

    def test_requires_started_game(self, registry):
        code = _full_room(registry)
        with pytest.raises(NotStartedError):
            registry.get_revealed_roles(code, "host")

    def test_non_host_rejected(self, registry):
        code = _full_room(registry)
        registry.start_game(code, "host")
        with pytest.raises(NotHostError):
            registry.get_revealed_roles(code, "conn-Ana")


class TestReassignment:
    def test_reassign_host(self, registry):
        code = _full_room(registry)
        room = registry.reassign_host(code, "host-2")
        assert room.is_host("host-2")
        assert not room.is_host("host")

    def test_member_reconnect_recovers_role(self, registry):
        code = _full_room(registry)
        room = registry.start_game(code, "host")
        original_role = room.find_by_name("Bojan").role

        result = registry.reassign_member_connection(code, "bojan", "conn-new")
        assert result.player.id == "conn-new"
        assert result.role == original_role
        assert result.is_host is False
        assert registry.find_member(code, "conn-Bojan") is None

    def test_member_reconnect_in_lobby_has_no_role(self, registry):
        code = _full_room(registry)
        result = registry.reassign_member_connection(code, "Ana", "conn-new")
        assert result.role is None

    def test_unknown_name(self, registry):
        code = _full_room(registry)
        with pytest.raises(PlayerNotFoundError):
            registry.reassign_member_connection(code, "Zoran", "conn-new")


class TestListingAndDeletion:
    def test_lists_lobby_rooms_including_full_ones(self, registry):
        full = _full_room(registry, host="h1")
        open_room = registry.create_room("h2", CONFIG)
        started = _full_room(registry, host="h3")
        registry.start_game(started, "h3")

        listing = {r.code: r for r in registry.list_available()}
        assert set(listing) == {full, open_room.code}
        assert listing[full].occupied == 3
        assert listing[full].capacity == 3

    def test_delete_room(self, registry):
        code = _full_room(registry)
        assert registry.delete_room(code).code == code
        assert registry.get_room(code) is None
        assert registry.delete_room(code) is None

    def test_counters(self, registry):
        code = _full_room(registry, host="h1")
        registry.create_room("h2", CONFIG)
        registry.start_game(code, "h1")
        assert registry.room_count == 2
        assert registry.started_room_count == 1


class TestIdleSweep:
    def test_sweeps_only_idle_rooms(self):
        clock = FakeClock()
        registry = RoomRegistry(clock=clock)
        idle = registry.create_room("h1", CONFIG)
        clock.advance(100)
        active = registry.create_room("h2", CONFIG)

        expired = registry.sweep_expired(clock() + 50, max_age=120)
        assert expired == [idle.code]
        assert registry.get_room(idle.code) is None
        assert registry.get_room(active.code) is active

    def test_mutations_refresh_activity(self):
        clock = FakeClock()
        registry = RoomRegistry(clock=clock)
        room = registry.create_room("h1", CONFIG)
        clock.advance(100)
        registry.join_room(room.code, "c1", "Ana")
        assert room.last_activity_at == clock()
        assert registry.sweep_expired(clock() + 50, max_age=120) == []

    def test_reads_do_not_refresh_activity(self):
        clock = FakeClock()
        registry = RoomRegistry(clock=clock)
        room = registry.create_room("h1", CONFIG)
        clock.advance(100)
        registry.get_room(room.code)
        registry.list_available()
        assert room.last_activity_at == room.created_at

    async def test_reap_notifies_callback(self):
        clock = FakeClock()
        on_expired = AsyncMock()
        registry = RoomRegistry(clock=clock, room_max_idle_seconds=60, on_rooms_expired=on_expired)
        room = registry.create_room("h1", CONFIG)
        clock.advance(61)

        assert await registry.reap_expired_rooms() == [room.code]
        on_expired.assert_awaited_once_with([room.code])

    async def test_reap_without_expired_rooms_skips_callback(self):
        on_expired = AsyncMock()
        registry = RoomRegistry(clock=FakeClock(), on_rooms_expired=on_expired)
        registry.create_room("h1", CONFIG)
        assert await registry.reap_expired_rooms() == []
        on_expired.assert_not_awaited()

    async def test_callback_failure_is_logged_not_raised(self, caplog):
        clock = FakeClock()
        registry = RoomRegistry(
            clock=clock,
            room_max_idle_seconds=60,
            on_rooms_expired=AsyncMock(side_effect=RuntimeError("boom")),
        )
        registry.create_room("h1", CONFIG)
        clock.advance(61)
        expired = await registry.reap_expired_rooms()
        assert len(expired) == 1
        assert "error in on_rooms_expired callback" in caplog.text

    async def test_reaper_start_stop(self):
        registry = RoomRegistry(clock=FakeClock(), sweep_interval_seconds=3600)
        registry.start_reaper()
        registry.start_reaper()
        assert registry._reaper_task is not None
        await registry.stop_reaper()
        assert registry._reaper_task is None
