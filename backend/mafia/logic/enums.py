"""
String enum definitions for role-reveal game concepts.
"""

from enum import StrEnum


class RoleKind(StrEnum):
    """Hidden roles a player can be dealt.

    Declaration order is the order roles are laid out before shuffling.
    """

    MAFIA = "mafia"
    DOKTOR = "doktor"
    KURVA = "kurva"
    POLICAJAC = "policajac"
    CIVIL = "civil"


class ErrorKind(StrEnum):
    """Coarse failure taxonomy reported on every error acknowledgement."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"
    INTERNAL = "internal"
