"""Manage disconnect grace timers for room members."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Callback type: (room_code, connection_id) -> Awaitable[None]
ExpireCallback = Callable[[str, str], Awaitable[None]]

TimerKey = tuple[str, str]


@dataclass
class _PendingDisconnect:
    connection_id: str
    task: asyncio.Task[None] | None = None


class DisconnectTimerManager:
    """Hold one cancellable grace timer per (room, member name).

    The timer remembers the connection id that went away. When it fires the
    callback receives that id, so a member who has since reconnected under a
    new id is left alone. Scheduling a timer for a key that already has one
    replaces it.
    """

    def __init__(self, grace_seconds: float, on_expire: ExpireCallback) -> None:
        self._grace_seconds = grace_seconds
        self._on_expire = on_expire
        self._pending: dict[TimerKey, _PendingDisconnect] = {}

    @property
    def grace_seconds(self) -> float:
        return self._grace_seconds

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @staticmethod
    def _key(room_code: str, name: str) -> TimerKey:
        return room_code, name.strip().casefold()

    def has_pending(self, room_code: str, name: str) -> bool:
        return self._key(room_code, name) in self._pending

    def schedule(self, room_code: str, name: str, connection_id: str) -> None:
        """Start the grace period for a member, replacing any previous timer."""
        key = self._key(room_code, name)
        self._cancel_entry(self._pending.pop(key, None))
        entry = _PendingDisconnect(connection_id=connection_id)
        entry.task = asyncio.create_task(self._run_timer(key, entry))
        self._pending[key] = entry
        logger.debug("disconnect timer scheduled for room %s (%.0fs)", room_code, self._grace_seconds)

    def cancel(self, room_code: str, name: str) -> bool:
        """Cancel a member's pending timer. Returns True if one existed."""
        entry = self._pending.pop(self._key(room_code, name), None)
        self._cancel_entry(entry)
        return entry is not None

    def cancel_room(self, room_code: str) -> int:
        """Cancel every pending timer for a room. Returns how many were cancelled."""
        keys = [key for key in self._pending if key[0] == room_code]
        for key in keys:
            self._cancel_entry(self._pending.pop(key))
        return len(keys)

    def cancel_all(self) -> None:
        for entry in self._pending.values():
            self._cancel_entry(entry)
        self._pending.clear()

    async def fire(self, room_code: str, name: str) -> bool:
        """Expire a pending timer now instead of waiting out the grace period."""
        entry = self._pending.pop(self._key(room_code, name), None)
        if entry is None:
            return False
        self._cancel_entry(entry)
        await self._invoke(room_code, entry.connection_id)
        return True

    async def _run_timer(self, key: TimerKey, entry: _PendingDisconnect) -> None:
        try:
            await asyncio.sleep(self._grace_seconds)
        except asyncio.CancelledError:
            return
        if self._pending.get(key) is entry:
            del self._pending[key]
        await self._invoke(key[0], entry.connection_id)

    async def _invoke(self, room_code: str, connection_id: str) -> None:
        try:
            await self._on_expire(room_code, connection_id)
        except Exception:
            logger.exception("disconnect timer callback failed for room %s", room_code)

    @staticmethod
    def _cancel_entry(entry: _PendingDisconnect | None) -> None:
        if entry is not None and entry.task is not None and not entry.task.done():
            entry.task.cancel()
