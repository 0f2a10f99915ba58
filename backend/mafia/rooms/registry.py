"""In-memory room registry: the single owner of all Room and Player state."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

import structlog

from mafia.logic.codes import generate_room_code, normalize_room_code
from mafia.logic.distributor import distribute
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
from mafia.logic.roles import validate_role_config
from mafia.logic.rng import secure_randbelow
from mafia.rooms.models import MemberReconnect, Player, RevealedRole, Room, RoomListing

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from mafia.logic.rng import RandBelow
    from mafia.logic.roles import RoleConfig

logger = structlog.get_logger()

Clock = Callable[[], float]


class RoomRegistry:
    """Owns every live room, keyed by normalized code.

    Purely state management: no I/O, no awaits. Every public method runs to
    completion on the event loop, so callers never observe a half-updated room.
    Failures raise RoomError subclasses.
    """

    def __init__(
        self,
        *,
        max_rooms: int = 500,
        room_max_idle_seconds: float = 7200,
        sweep_interval_seconds: float = 300,
        on_rooms_expired: Callable[[list[str]], Awaitable[None]] | None = None,
        clock: Clock = time.monotonic,
        randbelow: RandBelow = secure_randbelow,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        self._max_rooms = max_rooms
        self._room_max_idle_seconds = room_max_idle_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._on_rooms_expired = on_rooms_expired
        self._clock = clock
        self._randbelow = randbelow
        self._reaper_task: asyncio.Task[None] | None = None

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    @property
    def started_room_count(self) -> int:
        return sum(1 for room in self._rooms.values() if room.started)

    def set_on_rooms_expired(self, callback: Callable[[list[str]], Awaitable[None]] | None) -> None:
        self._on_rooms_expired = callback

    # --- lookup ---

    def get_room(self, code: str) -> Room | None:
        return self._rooms.get(normalize_room_code(code))

    def require_room(self, code: str) -> Room:
        room = self.get_room(code)
        if room is None:
            raise RoomNotFoundError
        return room

    def find_member(self, code: str, connection_id: str) -> Player | None:
        room = self.get_room(code)
        return room.find_by_id(connection_id) if room is not None else None

    def hosted_room(self, host_id: str) -> Room | None:
        for room in self._rooms.values():
            if room.host_connection_id == host_id:
                return room
        return None

    # --- lifecycle ---

    def create_room(self, host_id: str, role_config: RoleConfig) -> Room:
        """Allocate an empty lobby room with a fresh code."""
        if self.hosted_room(host_id) is not None:
            raise AlreadyHostingError
        if len(self._rooms) >= self._max_rooms:
            raise ServerFullError

        code = generate_room_code(self._randbelow)
        while code in self._rooms:
            logger.debug("room code collision, regenerating", room_code=code)
            code = generate_room_code(self._randbelow)

        now = self._clock()
        room = Room(
            code=code,
            host_connection_id=host_id,
            role_config=role_config,
            created_at=now,
            last_activity_at=now,
        )
        self._rooms[code] = room
        logger.info("room created", room_code=code, capacity=room.capacity)
        return room

    def join_room(self, code: str, player_id: str, name: str) -> Room:
        """Append a player; repeated joins from the same connection are no-ops."""
        room = self.require_room(code)
        if room.find_by_id(player_id) is not None:
            return room
        if room.started:
            raise AlreadyStartedError
        if room.is_full:
            raise RoomFullError
        if room.find_by_name(name) is not None:
            raise NameTakenError

        room.players.append(Player(id=player_id, name=name))
        self._touch(room)
        logger.info("player joined", room_code=room.code, occupied=room.occupied, capacity=room.capacity)
        return room

    def remove_member(self, code: str, connection_id: str) -> Room | None:
        """Drop a member by connection id. Absent members are ignored."""
        room = self.get_room(code)
        if room is None:
            return None
        remaining = [p for p in room.players if p.id != connection_id]
        if len(remaining) != len(room.players):
            room.players = remaining
            self._touch(room)
            logger.info("player removed", room_code=room.code, occupied=room.occupied)
        return room

    def start_game(self, code: str, requester_id: str) -> Room:
        """Deal roles to a full roster. All-or-nothing."""
        room = self.require_room(code)
        self._require_host(room, requester_id)
        if room.started:
            raise AlreadyStartedError
        if not validate_role_config(room.occupied, room.role_config):
            raise IncompleteRosterError(
                f"Need exactly {room.capacity} players to start, room has {room.occupied}",
            )

        # Single assignment: readers see either the role-less roster or the fully dealt one.
        room.players = distribute(room.players, room.role_config, randbelow=self._randbelow)
        room.started = True
        self._touch(room)
        logger.info("game started", room_code=room.code, players=room.occupied)
        return room

    def restart_game(self, code: str, requester_id: str, role_config: RoleConfig | None = None) -> Room:
        """Return to the lobby, clearing every role; optionally swap the config."""
        room = self.require_room(code)
        self._require_host(room, requester_id)
        if role_config is not None and role_config.capacity < room.occupied:
            raise CapacityTooSmallError(
                f"New configuration seats {role_config.capacity} but {room.occupied} players are present",
            )

        room.players = [replace(p, role=None) for p in room.players]
        if role_config is not None:
            room.role_config = role_config
        room.started = False
        self._touch(room)
        logger.info("game restarted", room_code=room.code, capacity=room.capacity)
        return room

    def get_revealed_roles(self, code: str, requester_id: str) -> list[RevealedRole]:
        """Host-only view of every dealt role, in roster order."""
        room = self.require_room(code)
        self._require_host(room, requester_id)
        if not room.started:
            raise NotStartedError
        return [RevealedRole(name=p.name, role=p.role) for p in room.players if p.role is not None]

    def reassign_host(self, code: str, new_connection_id: str) -> Room:
        """Point host authority at a new connection. The caller has already verified continuity."""
        room = self.require_room(code)
        previous = room.host_connection_id
        room.host_connection_id = new_connection_id
        self._touch(room)
        logger.info("host reassigned", room_code=room.code, previous=previous, current=new_connection_id)
        return room

    def reassign_member_connection(self, code: str, name: str, new_connection_id: str) -> MemberReconnect:
        """Rebind the member with this name to a new connection id."""
        room = self.require_room(code)
        player = room.find_by_name(name)
        if player is None:
            raise PlayerNotFoundError
        player.id = new_connection_id
        self._touch(room)
        logger.info("player reconnected", room_code=room.code)
        return MemberReconnect(room=room, player=player, is_host=room.is_host(new_connection_id))

    def list_available(self) -> list[RoomListing]:
        """Every room still in the lobby, full or not. Clients filter."""
        return [room.listing() for room in list(self._rooms.values()) if not room.started]

    def delete_room(self, code: str) -> Room | None:
        room = self._rooms.pop(normalize_room_code(code), None)
        if room is not None:
            logger.info("room deleted", room_code=room.code)
        return room

    def sweep_expired(self, now: float, max_age: float) -> list[str]:
        """Remove every room idle for longer than max_age. Returns the removed codes."""
        expired = [code for code, room in list(self._rooms.items()) if now - room.last_activity_at > max_age]
        for code in expired:
            self._rooms.pop(code, None)
            logger.info("room expired", room_code=code)
        return expired

    # --- reaper ---

    def start_reaper(self) -> None:
        """Start the periodic idle sweep task."""
        if self._reaper_task is not None:
            return
        self._reaper_task = asyncio.create_task(self._reaper_loop())

    async def stop_reaper(self) -> None:
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

    async def _reaper_loop(self) -> None:  # pragma: no cover
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            await self.reap_expired_rooms()

    async def reap_expired_rooms(self) -> list[str]:
        """Run one idle sweep and notify the expiry callback."""
        expired = self.sweep_expired(self._clock(), self._room_max_idle_seconds)
        if expired and self._on_rooms_expired is not None:
            try:
                await self._on_rooms_expired(expired)
            except Exception:
                logger.exception("error in on_rooms_expired callback", room_codes=expired)
        return expired

    # --- helpers ---

    @staticmethod
    def _require_host(room: Room, requester_id: str) -> None:
        if not room.is_host(requester_id):
            raise NotHostError

    def _touch(self, room: Room) -> None:
        room.last_activity_at = self._clock()
