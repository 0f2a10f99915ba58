"""Room and player models owned by the room registry."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

from mafia.logic.enums import RoleKind
from mafia.logic.roles import RoleConfig
from shared.auth import new_ticket_nonce


class PlayerInfo(BaseModel):
    """Public roster entry. Never carries the player's role."""

    id: str
    name: str


class RoomSnapshot(BaseModel):
    """Room state as seen by one connection (is_host is viewer-relative)."""

    code: str
    players: list[PlayerInfo]
    role_config: RoleConfig
    capacity: int
    started: bool
    is_host: bool
    host_id: str | None


class RoomListing(BaseModel):
    """Room summary for the discovery list."""

    code: str
    occupied: int
    capacity: int


class RevealedRole(BaseModel):
    name: str
    role: RoleKind


@dataclass
class Player:
    """A member occupying one capacity slot.

    id is the volatile connection id and changes on reconnect; name is the
    stable reconnection key; role stays None until the game starts.
    seat_nonce is minted once per seat and embedded in its session ticket.
    """

    id: str
    name: str
    role: RoleKind | None = None
    seat_nonce: str = field(default_factory=new_ticket_nonce)

    @property
    def name_key(self) -> str:
        return self.name.casefold()


@dataclass
class Room:
    """One play session.

    host_connection_id is tracked independently of players: the host may or
    may not also hold a seat. host_nonce is embedded in the host ticket.
    """

    code: str
    host_connection_id: str | None
    role_config: RoleConfig
    created_at: float
    last_activity_at: float
    players: list[Player] = field(default_factory=list)
    started: bool = False
    host_nonce: str = field(default_factory=new_ticket_nonce)

    @property
    def capacity(self) -> int:
        return self.role_config.capacity

    @property
    def occupied(self) -> int:
        return len(self.players)

    @property
    def is_full(self) -> bool:
        return self.occupied >= self.capacity

    def is_host(self, connection_id: str) -> bool:
        return self.host_connection_id is not None and self.host_connection_id == connection_id

    def find_by_id(self, connection_id: str) -> Player | None:
        for player in self.players:
            if player.id == connection_id:
                return player
        return None

    def find_by_name(self, name: str) -> Player | None:
        key = name.strip().casefold()
        for player in self.players:
            if player.name_key == key:
                return player
        return None

    def member_ids(self) -> list[str]:
        return [p.id for p in self.players]

    def get_player_info(self) -> list[PlayerInfo]:
        return [PlayerInfo(id=p.id, name=p.name) for p in self.players]

    def snapshot(self, viewer_id: str | None = None) -> RoomSnapshot:
        return RoomSnapshot(
            code=self.code,
            players=self.get_player_info(),
            role_config=self.role_config,
            capacity=self.capacity,
            started=self.started,
            is_host=viewer_id is not None and self.is_host(viewer_id),
            host_id=self.host_connection_id,
        )

    def listing(self) -> RoomListing:
        return RoomListing(code=self.code, occupied=self.occupied, capacity=self.capacity)


@dataclass
class MemberReconnect:
    """Result of rebinding a member to a new connection."""

    room: Room
    player: Player
    is_host: bool

    @property
    def role(self) -> RoleKind | None:
        return self.player.role if self.room.started else None
