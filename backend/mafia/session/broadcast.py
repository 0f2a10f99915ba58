"""Connection tracking and room fan-out for outbound messages."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from mafia.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

_SEND_ERRORS = (ConnectionError, RuntimeError, OSError)


class ConnectionHub:
    """Track live connections and which room channel each one listens to."""

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}
        # room_code -> {conn_id: None}; dicts keep subscription order
        self._subscribers: dict[str, dict[str, None]] = {}
        self._connection_rooms: dict[str, str] = {}  # conn_id -> room_code (reverse index)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> ConnectionProtocol | None:
        return self._connections.get(connection_id)

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, connection_id: str) -> str | None:
        """Forget a connection. Returns the room it was subscribed to, if any."""
        self._connections.pop(connection_id, None)
        return self.unsubscribe(connection_id)

    def subscribe(self, room_code: str, connection_id: str) -> None:
        """Move a connection onto a room channel (a connection listens to one room)."""
        current = self._connection_rooms.get(connection_id)
        if current == room_code:
            return
        if current is not None:
            self.unsubscribe(connection_id)
        self._subscribers.setdefault(room_code, {})[connection_id] = None
        self._connection_rooms[connection_id] = room_code

    def unsubscribe(self, connection_id: str) -> str | None:
        room_code = self._connection_rooms.pop(connection_id, None)
        if room_code is not None and room_code in self._subscribers:
            self._subscribers[room_code].pop(connection_id, None)
            if not self._subscribers[room_code]:
                del self._subscribers[room_code]
        return room_code

    def unsubscribe_room(self, room_code: str) -> list[str]:
        """Drop a whole room channel. Returns the connection ids that were on it."""
        subscribers = list(self._subscribers.pop(room_code, {}))
        for connection_id in subscribers:
            self._connection_rooms.pop(connection_id, None)
        return subscribers

    def subscribers(self, room_code: str) -> list[str]:
        return list(self._subscribers.get(room_code, {}))

    async def send_to(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Send to a single connection. Returns True on success."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.send_message(message)
        except _SEND_ERRORS:
            logger.debug("send failed", connection_id=connection_id)
            return False
        return True

    async def broadcast(self, room_code: str, message: dict[str, Any], exclude: str | None = None) -> None:
        """Send to every subscriber of a room, optionally skipping one.

        Iterates a snapshot of the subscriber list, since a send can yield to a
        handler that changes the subscriptions.
        """
        for connection_id in self.subscribers(room_code):
            if connection_id == exclude:
                continue
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            with contextlib.suppress(*_SEND_ERRORS):
                await connection.send_message(message)
