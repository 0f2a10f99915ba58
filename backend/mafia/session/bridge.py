from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from mafia.logic.codes import normalize_room_code
from mafia.logic.exceptions import AlreadyInRoomError, InvalidTicketError, NotHostError, PlayerNotFoundError
from mafia.messaging.types import (
    GameDeletedEvent,
    GameDeletedReason,
    GameRestartedEvent,
    GameStartedEvent,
    RosterChangedEvent,
)
from mafia.session.timer_manager import DisconnectTimerManager
from shared.auth import create_session_ticket, verify_session_ticket

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mafia.logic.roles import RoleConfig
    from mafia.messaging.protocol import ConnectionProtocol
    from mafia.rooms.models import Room
    from mafia.rooms.registry import RoomRegistry
    from mafia.session.broadcast import ConnectionHub

logger = structlog.get_logger()


class SessionBridge:
    """Translate connection-level requests into registry operations and fan-out.

    Each handler returns the acknowledgement payload for the caller or raises a
    RoomError. Any mutation and the broadcasts it causes run under the room's
    lock, so every member sees one order of events per room.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        hub: ConnectionHub,
        *,
        session_secret: str,
        disconnect_grace_seconds: float = 1800,
    ) -> None:
        self._registry = registry
        self._hub = hub
        self._session_secret = session_secret
        self._bindings: dict[str, str] = {}  # connection_id -> room_code
        self._room_locks: dict[str, asyncio.Lock] = {}  # room_code -> Lock
        self._timers = DisconnectTimerManager(disconnect_grace_seconds, on_expire=self.expire_member)
        registry.set_on_rooms_expired(self.handle_rooms_expired)

    @property
    def timers(self) -> DisconnectTimerManager:
        return self._timers

    @property
    def pending_disconnects(self) -> int:
        return self._timers.pending_count

    def bound_room(self, connection_id: str) -> str | None:
        return self._bindings.get(connection_id)

    # --- connection lifecycle ---

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._hub.register(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Start the grace period for a departed member. Hosts simply become absent."""
        connection_id = connection.connection_id
        room_code = self._bindings.pop(connection_id, None)
        self._hub.unregister(connection_id)
        if room_code is None:
            return
        room = self._registry.get_room(room_code)
        if room is None:
            return
        player = room.find_by_id(connection_id)
        if player is not None:
            self._timers.schedule(room.code, player.name, connection_id)
            logger.info("member disconnected, grace period started", room_code=room.code)
        elif room.is_host(connection_id):
            logger.info("host disconnected", room_code=room.code)

    async def expire_member(self, room_code: str, connection_id: str) -> None:
        """Grace timer callback: drop the member if it never came back."""
        if self._registry.get_room(room_code) is None:
            return
        async with self._locked_room(room_code) as code:
            room = self._registry.get_room(code)
            if room is None or room.find_by_id(connection_id) is None:
                return
            room = self._registry.remove_member(code, connection_id)
            logger.info("member removed after grace period", room_code=code)
            await self._broadcast_roster(room)

    async def handle_rooms_expired(self, room_codes: list[str]) -> None:
        """Reaper callback: tell whoever is still listening that the room is gone."""
        for room_code in room_codes:
            lock = self._room_locks.get(room_code)
            async with lock if lock is not None else contextlib.nullcontext():
                await self._teardown_room(room_code, GameDeletedReason.EXPIRED)

    def shutdown(self) -> None:
        self._timers.cancel_all()

    # --- room operations ---

    async def create_room(self, connection: ConnectionProtocol, role_config: RoleConfig) -> dict[str, Any]:
        connection_id = connection.connection_id
        self._ensure_unbound(connection_id)
        room = self._registry.create_room(connection_id, role_config)
        self._bind(connection_id, room.code)
        host_ticket = create_session_ticket(
            room.code,
            "",
            self._session_secret,
            nonce=room.host_nonce,
            is_host=True,
        )
        return {
            "code": room.code,
            "host_ticket": host_ticket,
            "room": self._snapshot(room, connection_id),
        }

    async def join_room(self, connection: ConnectionProtocol, code: str, name: str) -> dict[str, Any]:
        connection_id = connection.connection_id
        async with self._locked_room(code) as room_code:
            self._ensure_unbound(connection_id, allowed=room_code)
            occupied = self._registry.require_room(room_code).occupied
            room = self._registry.join_room(room_code, connection_id, name)
            self._bind(connection_id, room.code)
            if room.occupied != occupied:
                await self._broadcast_roster(room)
            player = room.find_by_id(connection_id)
            session_ticket = create_session_ticket(
                room.code,
                player.name,
                self._session_secret,
                nonce=player.seat_nonce,
            )
            return {**self._snapshot(room, connection_id), "session_ticket": session_ticket}

    async def reconnect_as_host(self, connection: ConnectionProtocol, code: str, host_ticket: str) -> dict[str, Any]:
        """Move host authority to this connection.

        The previous host connection is detached from the room unless it still
        holds a seat there.
        """
        connection_id = connection.connection_id
        async with self._locked_room(code) as room_code:
            room = self._registry.require_room(room_code)
            ticket = verify_session_ticket(host_ticket, self._session_secret)
            if ticket is None or not ticket.grants_host(room_code) or not ticket.matches_nonce(room.host_nonce):
                raise InvalidTicketError
            self._ensure_unbound(connection_id, allowed=room_code)
            previous_id = room.host_connection_id
            room = self._registry.reassign_host(room_code, connection_id)
            if previous_id is not None and previous_id != connection_id and room.find_by_id(previous_id) is None:
                self._unbind(previous_id, room_code)
            self._bind(connection_id, room.code)
            return self._snapshot(room, connection_id)

    async def reconnect_as_player(
        self,
        connection: ConnectionProtocol,
        code: str,
        name: str,
        session_ticket: str,
    ) -> dict[str, Any]:
        """Rebind a member to this connection and hand back its role.

        The ticket must carry the current seat's nonce, so a ticket issued to an
        earlier holder of the same name is refused. Cancels the member's pending
        grace timer; the rest of the room is not notified since the roster did
        not change.
        """
        connection_id = connection.connection_id
        async with self._locked_room(code) as room_code:
            ticket = verify_session_ticket(session_ticket, self._session_secret)
            if ticket is None or not ticket.grants_player(room_code, name):
                raise InvalidTicketError
            previous = self._registry.require_room(room_code).find_by_name(name)
            if previous is None:
                raise PlayerNotFoundError
            if not ticket.matches_nonce(previous.seat_nonce):
                raise InvalidTicketError
            self._ensure_unbound(connection_id, allowed=room_code)
            previous_id = previous.id
            result = self._registry.reassign_member_connection(room_code, name, connection_id)
            self._timers.cancel(room_code, result.player.name)
            if previous_id != connection_id:
                self._unbind(previous_id, room_code)
            self._bind(connection_id, room_code)
            role = result.role
            return {**self._snapshot(result.room, connection_id), "role": role.value if role is not None else None}

    async def start_game(self, connection: ConnectionProtocol, code: str) -> dict[str, Any]:
        async with self._locked_room(code) as room_code:
            room = self._registry.start_game(room_code, connection.connection_id)
            for player in room.players:
                event = GameStartedEvent(code=room.code, role=player.role, is_host=room.is_host(player.id))
                await self._hub.send_to(player.id, event.model_dump(mode="json"))
            host_id = room.host_connection_id
            if host_id is not None and room.find_by_id(host_id) is None:
                event = GameStartedEvent(code=room.code, role=None, is_host=True)
                await self._hub.send_to(host_id, event.model_dump(mode="json"))
        return {}

    async def restart_game(
        self,
        connection: ConnectionProtocol,
        code: str,
        role_config: RoleConfig | None = None,
    ) -> dict[str, Any]:
        async with self._locked_room(code) as room_code:
            room = self._registry.restart_game(room_code, connection.connection_id, role_config)
            event = GameRestartedEvent(code=room.code, players=room.get_player_info(), role_config=room.role_config)
            await self._hub.broadcast(room.code, event.model_dump(mode="json"))
        return {}

    async def leave_game(self, connection: ConnectionProtocol, code: str) -> dict[str, Any]:
        """Leave immediately, without a grace period."""
        connection_id = connection.connection_id
        async with self._locked_room(code) as room_code:
            player = self._registry.require_room(room_code).find_by_id(connection_id)
            self._unbind(connection_id, room_code)
            if player is not None:
                self._timers.cancel(room_code, player.name)
                room = self._registry.remove_member(room_code, connection_id)
                logger.info("member left", room_code=room_code)
                await self._broadcast_roster(room)
        return {}

    async def delete_game(self, connection: ConnectionProtocol, code: str) -> dict[str, Any]:
        async with self._locked_room(code) as room_code:
            room = self._registry.require_room(room_code)
            if not room.is_host(connection.connection_id):
                raise NotHostError
            self._registry.delete_room(room_code)
            await self._teardown_room(room_code, GameDeletedReason.DELETED)
        return {}

    def get_room_info(self, connection: ConnectionProtocol, code: str) -> dict[str, Any]:
        room = self._registry.require_room(code)
        return self._snapshot(room, connection.connection_id)

    def get_revealed_roles(self, connection: ConnectionProtocol, code: str) -> dict[str, Any]:
        roles = self._registry.get_revealed_roles(code, connection.connection_id)
        return {"roles": [r.model_dump(mode="json") for r in roles]}

    def list_available_rooms(self) -> dict[str, Any]:
        return {"rooms": [r.model_dump(mode="json") for r in self._registry.list_available()]}

    # --- helpers ---

    @contextlib.asynccontextmanager
    async def _locked_room(self, code: str) -> AsyncIterator[str]:
        """Hold the per-room lock for an existing room, yielding its normalized code."""
        room = self._registry.require_room(code)
        lock = self._room_locks.setdefault(room.code, asyncio.Lock())
        async with lock:
            yield room.code

    def _ensure_unbound(self, connection_id: str, allowed: str | None = None) -> None:
        """Reject a connection that is still attached to a different live room."""
        bound = self._bindings.get(connection_id)
        if bound is None or bound == allowed:
            return
        if self._registry.get_room(bound) is not None:
            raise AlreadyInRoomError
        self._unbind(connection_id, bound)

    def _bind(self, connection_id: str, room_code: str) -> None:
        self._bindings[connection_id] = room_code
        self._hub.subscribe(room_code, connection_id)

    def _unbind(self, connection_id: str, room_code: str) -> None:
        if self._bindings.get(connection_id) == room_code:
            del self._bindings[connection_id]
            self._hub.unsubscribe(connection_id)

    async def _teardown_room(self, room_code: str, reason: GameDeletedReason) -> None:
        """Notify and detach everyone on a room that no longer exists in the registry."""
        code = normalize_room_code(room_code)
        event = GameDeletedEvent(code=code, reason=reason)
        await self._hub.broadcast(code, event.model_dump(mode="json"))
        cancelled = self._timers.cancel_room(code)
        for connection_id in [cid for cid, bound in self._bindings.items() if bound == code]:
            del self._bindings[connection_id]
        self._hub.unsubscribe_room(code)
        self._room_locks.pop(code, None)
        logger.info("room torn down", room_code=code, reason=reason, cancelled_timers=cancelled)

    async def _broadcast_roster(self, room: Room) -> None:
        event = RosterChangedEvent(code=room.code, players=room.get_player_info())
        await self._hub.broadcast(room.code, event.model_dump(mode="json"))

    @staticmethod
    def _snapshot(room: Room, viewer_id: str) -> dict[str, Any]:
        return room.snapshot(viewer_id).model_dump(mode="json")
