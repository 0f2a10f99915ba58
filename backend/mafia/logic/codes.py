"""Room codes: short, human-typeable identifiers without look-alike glyphs."""

from mafia.logic.exceptions import InvalidInputError
from mafia.logic.rng import RandBelow, random_string, secure_randbelow

# 24 letters without I/O plus digits 2-9: 32 symbols, 32**6 ~ 1.07e9 codes.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6

_ALPHABET_SET = frozenset(ROOM_CODE_ALPHABET)


def generate_room_code(randbelow: RandBelow = secure_randbelow) -> str:
    return random_string(ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, randbelow)


def normalize_room_code(raw: str) -> str:
    """Canonical form used as the registry key: trimmed and uppercased."""
    return raw.strip().upper()


def is_valid_room_code(code: str) -> bool:
    return len(code) == ROOM_CODE_LENGTH and all(c in _ALPHABET_SET for c in code)


def parse_room_code(raw: str) -> str:
    """Normalize a client-supplied code, rejecting anything outside the alphabet."""
    code = normalize_room_code(raw)
    if not is_valid_room_code(code):
        raise InvalidInputError(f"Room code must be {ROOM_CODE_LENGTH} characters from {ROOM_CODE_ALPHABET}")
    return code
