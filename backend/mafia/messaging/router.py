from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from mafia.logic.enums import ErrorKind
from mafia.logic.exceptions import RoomError
from mafia.messaging.types import (
    ClientMessage,
    CreateRoomMessage,
    DeleteGameMessage,
    GetRevealedRolesMessage,
    GetRoomInfoMessage,
    JoinRoomMessage,
    LeaveGameMessage,
    ListRoomsMessage,
    PingMessage,
    PongMessage,
    ReconnectHostMessage,
    ReconnectPlayerMessage,
    RequestId,
    RestartGameMessage,
    RouterErrorCode,
    StartGameMessage,
    ack_error,
    ack_ok,
    extract_request_id,
    parse_client_message,
)

if TYPE_CHECKING:
    from mafia.messaging.protocol import ConnectionProtocol
    from mafia.session.bridge import SessionBridge

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming requests to the session bridge and answers each with an ack.

    Domain and validation failures become error acks here and never reach the
    transport. Contains no WebSocket code and can be tested with a mock
    connection.
    """

    def __init__(self, bridge: SessionBridge) -> None:
        self._bridge = bridge

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self.send_error(
                connection,
                extract_request_id(raw_message),
                RouterErrorCode.INVALID_MESSAGE,
                _describe_validation_error(e),
            )
            return

        if isinstance(message, PingMessage):
            await connection.send_message(PongMessage().model_dump(mode="json"))
            return

        try:
            data = await self._dispatch(connection, message)
        except RoomError as e:
            logger.info("request %s rejected for %s: %s", message.type, connection.connection_id, e.code)
            await connection.send_message(ack_error(message.id, e.kind, e.code, e.message))
            return
        except Exception:
            logger.exception("unexpected error handling %s for %s", message.type, connection.connection_id)
            await self.send_error(connection, message.id, RouterErrorCode.INTERNAL_ERROR, "Internal server error")
            return

        await connection.send_message(ack_ok(message.id, data))

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> dict[str, Any]:
        bridge = self._bridge
        if isinstance(message, CreateRoomMessage):
            return await bridge.create_room(connection, message.role_config)
        if isinstance(message, JoinRoomMessage):
            return await bridge.join_room(connection, message.code, message.name)
        if isinstance(message, ReconnectHostMessage):
            return await bridge.reconnect_as_host(connection, message.code, message.host_ticket)
        if isinstance(message, ReconnectPlayerMessage):
            return await bridge.reconnect_as_player(connection, message.code, message.name, message.session_ticket)
        if isinstance(message, StartGameMessage):
            return await bridge.start_game(connection, message.code)
        if isinstance(message, RestartGameMessage):
            return await bridge.restart_game(connection, message.code, message.role_config)
        if isinstance(message, LeaveGameMessage):
            return await bridge.leave_game(connection, message.code)
        if isinstance(message, DeleteGameMessage):
            return await bridge.delete_game(connection, message.code)
        if isinstance(message, GetRoomInfoMessage):
            return bridge.get_room_info(connection, message.code)
        if isinstance(message, GetRevealedRolesMessage):
            return bridge.get_revealed_roles(connection, message.code)
        if isinstance(message, ListRoomsMessage):
            return bridge.list_available_rooms()
        raise TypeError(f"unhandled message type: {type(message).__name__}")

    async def send_error(
        self,
        connection: ConnectionProtocol,
        request_id: RequestId | None,
        code: RouterErrorCode,
        message: str,
    ) -> None:
        kind = ErrorKind.INTERNAL if code == RouterErrorCode.INTERNAL_ERROR else ErrorKind.INVALID_INPUT
        await connection.send_message(ack_error(request_id, kind, code.value, message))

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._bridge.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._bridge.handle_disconnect(connection)


def _describe_validation_error(error: Exception) -> str:
    """First validation problem as 'field: reason', enough for a client to fix its request."""
    if isinstance(error, ValidationError):
        errors = error.errors(include_url=False)
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first["loc"])
            return f"{location}: {first['msg']}" if location else first["msg"]
    return str(error)
