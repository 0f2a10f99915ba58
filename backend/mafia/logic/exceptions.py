"""Typed domain exceptions for room and session rule violations.

Every failure the room registry or session bridge can report is a RoomError
subclass carrying a coarse ErrorKind and a stable machine-readable code. The
message router catches RoomError at the connection boundary and converts it
into an error acknowledgement; nothing in this hierarchy is meant to reach
the transport.
"""

from typing import ClassVar

from mafia.logic.enums import ErrorKind


class RoomError(Exception):
    """Base exception for room lifecycle failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_INPUT
    code: ClassVar[str] = "room_error"
    default_message: ClassVar[str] = "Room operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        return {"kind": self.kind.value, "code": self.code, "message": self.message}


# --- not found ---


class RoomNotFoundError(RoomError):
    kind = ErrorKind.NOT_FOUND
    code = "room_not_found"
    default_message = "Room does not exist"


class PlayerNotFoundError(RoomError):
    kind = ErrorKind.NOT_FOUND
    code = "player_not_found"
    default_message = "No player with that name in this room"


# --- unauthorized ---


class NotHostError(RoomError):
    kind = ErrorKind.UNAUTHORIZED
    code = "not_host"
    default_message = "Only the host can do that"


class InvalidTicketError(RoomError):
    kind = ErrorKind.UNAUTHORIZED
    code = "invalid_ticket"
    default_message = "Session ticket is invalid for this room"


# --- conflict ---


class AlreadyStartedError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "already_started"
    default_message = "Game has already started"


class NotStartedError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "game_not_started"
    default_message = "Game has not started yet"


class RoomFullError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "room_full"
    default_message = "Room is full"


class IncompleteRosterError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "incomplete_roster"
    default_message = "Player count does not match the role configuration"


class NameTakenError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "name_taken"
    default_message = "Another player in this room already uses that name"


class AlreadyInRoomError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "already_in_room"
    default_message = "You must leave your current room first"


class AlreadyHostingError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "already_hosting"
    default_message = "This connection already hosts a room"


class CapacityTooSmallError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "capacity_too_small"
    default_message = "New role configuration cannot seat the current players"


class ServerFullError(RoomError):
    kind = ErrorKind.CONFLICT
    code = "server_full"
    default_message = "Server has reached its room limit"


# --- invalid input ---


class InvalidInputError(RoomError):
    kind = ErrorKind.INVALID_INPUT
    code = "invalid_input"
    default_message = "Invalid input"
