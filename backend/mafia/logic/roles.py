"""Role configuration: how many of each role a room deals, and therefore its capacity."""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from mafia.logic.enums import RoleKind

MAX_ROLE_COUNT = 50
MAX_ROOM_CAPACITY = 50

_COUNT_FIELD = Field(default=0, ge=0, le=MAX_ROLE_COUNT, strict=True)


class RoleConfig(BaseModel):
    """Required count of each role kind. Missing kinds default to zero."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    mafia: int = _COUNT_FIELD
    doktor: int = _COUNT_FIELD
    kurva: int = _COUNT_FIELD
    policajac: int = _COUNT_FIELD
    civil: int = _COUNT_FIELD

    @model_validator(mode="after")
    def _check_capacity(self) -> "RoleConfig":
        if not (1 <= self.capacity <= MAX_ROOM_CAPACITY):
            raise ValueError(f"total role count must be 1-{MAX_ROOM_CAPACITY}, got {self.capacity}")
        return self

    @property
    def capacity(self) -> int:
        return sum(self.counts().values())

    def counts(self) -> dict[RoleKind, int]:
        """Role counts keyed by kind, in declaration order."""
        return {kind: getattr(self, kind.value) for kind in RoleKind}


def build_role_pool(role_config: RoleConfig) -> list[RoleKind]:
    """Expand a config into its role multiset: each kind repeated its configured count."""
    pool: list[RoleKind] = []
    for kind, count in role_config.counts().items():
        pool.extend([kind] * count)
    return pool


def validate_role_config(player_count: int, role_config: RoleConfig) -> bool:
    """Check that a config deals exactly one role to each of player_count players."""
    return role_config.capacity == player_count
