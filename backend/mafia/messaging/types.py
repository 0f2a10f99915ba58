from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field, TypeAdapter, field_validator

from mafia.logic.codes import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, is_valid_room_code, normalize_room_code
from mafia.logic.enums import ErrorKind, RoleKind
from mafia.logic.roles import RoleConfig
from mafia.rooms.models import PlayerInfo

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_NAME_LENGTH = 24
MAX_REQUEST_ID_LENGTH = 64
MAX_TICKET_LENGTH = 2000


class ClientMessageType(StrEnum):
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    RECONNECT_HOST = "reconnect_host"
    RECONNECT_PLAYER = "reconnect_player"
    START_GAME = "start_game"
    RESTART_GAME = "restart_game"
    LEAVE_GAME = "leave_game"
    DELETE_GAME = "delete_game"
    GET_ROOM_INFO = "get_room_info"
    GET_REVEALED_ROLES = "get_revealed_roles"
    LIST_ROOMS = "list_rooms"
    PING = "ping"


class ServerMessageType(StrEnum):
    ACK = "ack"
    ROSTER_CHANGED = "roster_changed"
    GAME_STARTED = "game_started"
    GAME_RESTARTED = "game_restarted"
    GAME_DELETED = "game_deleted"
    PONG = "pong"


class RouterErrorCode(StrEnum):
    """Error codes produced by the router itself rather than by a room operation."""

    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INTERNAL_ERROR = "internal_error"


class GameDeletedReason(StrEnum):
    DELETED = "deleted"
    EXPIRED = "expired"


RequestId = int | Annotated[str, Field(max_length=MAX_REQUEST_ID_LENGTH)]


class _Request(BaseModel):
    id: RequestId | None = None


class _RoomRequest(_Request):
    code: str = Field(min_length=1, max_length=32)

    @field_validator("code")
    @classmethod
    def _validate_code(cls, v: str) -> str:
        code = normalize_room_code(v)
        if not is_valid_room_code(code):
            raise ValueError(f"room code must be {ROOM_CODE_LENGTH} characters from {ROOM_CODE_ALPHABET}")
        return code


def _validate_name(v: str) -> str:
    name = v.strip()
    if not name:
        raise ValueError("name must not be blank")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"name must be at most {MAX_NAME_LENGTH} characters")
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in name):
        raise ValueError("name must not contain control characters")
    return name


PlayerName = Annotated[str, Field(max_length=256), AfterValidator(_validate_name)]


class CreateRoomMessage(_Request):
    type: Literal[ClientMessageType.CREATE_ROOM] = ClientMessageType.CREATE_ROOM
    role_config: RoleConfig


class JoinRoomMessage(_RoomRequest):
    type: Literal[ClientMessageType.JOIN_ROOM] = ClientMessageType.JOIN_ROOM
    name: PlayerName


class ReconnectHostMessage(_RoomRequest):
    type: Literal[ClientMessageType.RECONNECT_HOST] = ClientMessageType.RECONNECT_HOST
    host_ticket: str = Field(min_length=1, max_length=MAX_TICKET_LENGTH)


class ReconnectPlayerMessage(_RoomRequest):
    type: Literal[ClientMessageType.RECONNECT_PLAYER] = ClientMessageType.RECONNECT_PLAYER
    name: PlayerName
    session_ticket: str = Field(min_length=1, max_length=MAX_TICKET_LENGTH)


class StartGameMessage(_RoomRequest):
    type: Literal[ClientMessageType.START_GAME] = ClientMessageType.START_GAME


class RestartGameMessage(_RoomRequest):
    type: Literal[ClientMessageType.RESTART_GAME] = ClientMessageType.RESTART_GAME
    role_config: RoleConfig | None = None


class LeaveGameMessage(_RoomRequest):
    type: Literal[ClientMessageType.LEAVE_GAME] = ClientMessageType.LEAVE_GAME


class DeleteGameMessage(_RoomRequest):
    type: Literal[ClientMessageType.DELETE_GAME] = ClientMessageType.DELETE_GAME


class GetRoomInfoMessage(_RoomRequest):
    type: Literal[ClientMessageType.GET_ROOM_INFO] = ClientMessageType.GET_ROOM_INFO


class GetRevealedRolesMessage(_RoomRequest):
    type: Literal[ClientMessageType.GET_REVEALED_ROLES] = ClientMessageType.GET_REVEALED_ROLES


class ListRoomsMessage(_Request):
    type: Literal[ClientMessageType.LIST_ROOMS] = ClientMessageType.LIST_ROOMS


class PingMessage(_Request):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = (
    CreateRoomMessage
    | JoinRoomMessage
    | ReconnectHostMessage
    | ReconnectPlayerMessage
    | StartGameMessage
    | RestartGameMessage
    | LeaveGameMessage
    | DeleteGameMessage
    | GetRoomInfoMessage
    | GetRevealedRolesMessage
    | ListRoomsMessage
    | PingMessage
)

_client_message_adapter = TypeAdapter(Annotated[ClientMessage, Field(discriminator="type")])


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage, dispatching on its type."""
    return _client_message_adapter.validate_python(data)


def extract_request_id(data: dict[str, Any]) -> RequestId | None:
    """Best-effort request id from a frame that failed validation, so the error ack can echo it."""
    value = data.get("id")
    if isinstance(value, bool):
        return None
    if isinstance(value, int) or (isinstance(value, str) and len(value) <= MAX_REQUEST_ID_LENGTH):
        return value
    return None


# --- server -> client ---


class AckError(BaseModel):
    kind: ErrorKind
    code: str
    message: str


class AckOkMessage(BaseModel):
    type: Literal[ServerMessageType.ACK] = ServerMessageType.ACK
    id: RequestId | None
    ok: Literal[True] = True
    data: dict[str, Any]


class AckErrorMessage(BaseModel):
    type: Literal[ServerMessageType.ACK] = ServerMessageType.ACK
    id: RequestId | None
    ok: Literal[False] = False
    error: AckError


class RosterChangedEvent(BaseModel):
    type: Literal[ServerMessageType.ROSTER_CHANGED] = ServerMessageType.ROSTER_CHANGED
    code: str
    players: list[PlayerInfo]


class GameStartedEvent(BaseModel):
    """Sent privately to each member, and to a host that holds no seat (role is None)."""

    type: Literal[ServerMessageType.GAME_STARTED] = ServerMessageType.GAME_STARTED
    code: str
    role: RoleKind | None
    is_host: bool


class GameRestartedEvent(BaseModel):
    type: Literal[ServerMessageType.GAME_RESTARTED] = ServerMessageType.GAME_RESTARTED
    code: str
    players: list[PlayerInfo]
    role_config: RoleConfig


class GameDeletedEvent(BaseModel):
    type: Literal[ServerMessageType.GAME_DELETED] = ServerMessageType.GAME_DELETED
    code: str
    reason: GameDeletedReason


class PongMessage(BaseModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG


def ack_ok(request_id: RequestId | None, data: dict[str, Any]) -> dict[str, Any]:
    return AckOkMessage(id=request_id, data=data).model_dump(mode="json")


def ack_error(request_id: RequestId | None, kind: ErrorKind, code: str, message: str) -> dict[str, Any]:
    return AckErrorMessage(
        id=request_id,
        error=AckError(kind=kind, code=code, message=message),
    ).model_dump(mode="json")
