"""
Secret role distribution.

Expands a role configuration into its multiset, shuffles it with the CSPRNG
backed Fisher-Yates in mafia.logic.rng, and deals one role per player by
position. Pure: inputs are never mutated, callers swap in the returned list.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from mafia.logic.rng import RandBelow, fisher_yates_shuffle, secure_randbelow
from mafia.logic.roles import build_role_pool, validate_role_config

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mafia.logic.roles import RoleConfig
    from mafia.rooms.models import Player


def distribute(
    players: Sequence[Player],
    role_config: RoleConfig,
    *,
    randbelow: RandBelow = secure_randbelow,
) -> list[Player]:
    """Return copies of players, each holding exactly one role from the shuffled pool.

    Raises ValueError when the player count differs from the config capacity;
    the registry checks the roster before calling, so this indicates a caller bug.
    """
    if not validate_role_config(len(players), role_config):
        raise ValueError(f"cannot deal {role_config.capacity} roles to {len(players)} players")
    roles = fisher_yates_shuffle(build_role_pool(role_config), randbelow)
    return [replace(player, role=role) for player, role in zip(players, roles, strict=True)]
