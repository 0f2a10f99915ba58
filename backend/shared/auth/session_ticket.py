"""HMAC-SHA256 signed session tickets for reconnecting to a room.

A ticket is issued when a connection creates a room (host ticket) or joins one
(player ticket). On reconnect the client presents it together with the room
code (and player name); the server only restores host or membership status
when the signature, expiry, room/name binding and nonce all check out. The
nonce is minted per seat (player) or per room (host), so a ticket dies with the
seat or room it was issued for and cannot take over a later holder of the same
name or code.

Token format: base64url(json_payload_bytes).base64url(hmac_sha256_signature)
"""

import base64
import binascii
import hashlib
import hmac
import json
import math
import secrets
import time
from dataclasses import asdict, dataclass

import structlog

logger = structlog.get_logger()

_TOKEN_PARTS = 2  # base64url(payload).base64url(signature)

TICKET_TTL_SECONDS = 86400  # 24 hours
CLOCK_SKEW_SECONDS = 60


@dataclass
class SessionTicket:
    """Payload carried inside a signed session ticket.

    name is empty for host tickets. nonce ties the ticket to one seat or room.
    """

    room_code: str
    name: str
    is_host: bool
    nonce: str
    issued_at: float
    expires_at: float

    def grants_host(self, room_code: str) -> bool:
        return self.is_host and self.room_code == room_code

    def grants_player(self, room_code: str, name: str) -> bool:
        return (
            not self.is_host
            and self.room_code == room_code
            and self.name.casefold() == name.strip().casefold()
        )

    def matches_nonce(self, nonce: str) -> bool:
        return hmac.compare_digest(self.nonce.encode(), nonce.encode())


def new_ticket_nonce() -> str:
    return secrets.token_urlsafe(16)


def create_session_ticket(
    room_code: str,
    name: str,
    secret: str,
    *,
    nonce: str,
    is_host: bool = False,
) -> str:
    """Create and sign a session ticket, returning the token string."""
    now = time.time()
    ticket = SessionTicket(
        room_code=room_code,
        name=name,
        is_host=is_host,
        nonce=nonce,
        issued_at=now,
        expires_at=now + TICKET_TTL_SECONDS,
    )
    return sign_session_ticket(ticket, secret)


def sign_session_ticket(ticket: SessionTicket, secret: str) -> str:
    payload_bytes = json.dumps(asdict(ticket), sort_keys=True).encode()
    sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    payload_b64 = base64.urlsafe_b64encode(payload_bytes).decode()
    sig_b64 = base64.urlsafe_b64encode(sig).decode()
    return f"{payload_b64}.{sig_b64}"


def verify_session_ticket(token: str, secret: str) -> SessionTicket | None:
    """Verify HMAC signature, payload shape, and expiry. Returns None on any failure."""
    parts = token.split(".")
    if len(parts) != _TOKEN_PARTS:
        return None

    try:
        payload_bytes = base64.urlsafe_b64decode(parts[0])
        provided_sig = base64.urlsafe_b64decode(parts[1])
    except (ValueError, binascii.Error):
        return None

    expected_sig = hmac.new(secret.encode(), payload_bytes, hashlib.sha256).digest()
    if not hmac.compare_digest(provided_sig, expected_sig):
        logger.debug("session ticket signature mismatch")
        return None

    try:
        data = json.loads(payload_bytes)
        ticket = SessionTicket(**data)
    except (json.JSONDecodeError, TypeError, KeyError):
        logger.debug("session ticket malformed payload")
        return None

    if not _has_valid_fields(ticket):
        return None

    return ticket


def _is_finite_number(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _has_valid_fields(ticket: SessionTicket) -> bool:
    """Check field types and temporal claims.

    Timestamps must be finite numbers, issued_at must not be in the future
    (beyond clock skew), the lifetime must be positive and within the TTL,
    and the ticket must not have expired.
    """
    if not all(isinstance(value, str) for value in (ticket.room_code, ticket.name, ticket.nonce)):
        logger.debug("session ticket non-string identity")
        return False
    if not isinstance(ticket.is_host, bool):
        logger.debug("session ticket non-bool host flag")
        return False
    if not _is_finite_number(ticket.issued_at) or not _is_finite_number(ticket.expires_at):
        logger.debug("session ticket non-finite timestamp")
        return False

    now = time.time()
    if ticket.issued_at > now + CLOCK_SKEW_SECONDS:
        logger.debug("session ticket issued in the future")
        return False
    if ticket.expires_at <= ticket.issued_at:
        logger.debug("session ticket expires_at <= issued_at")
        return False
    if ticket.expires_at - ticket.issued_at > TICKET_TTL_SECONDS + CLOCK_SKEW_SECONDS:
        logger.debug("session ticket lifetime too long")
        return False
    if now > ticket.expires_at:
        logger.debug("session ticket expired")
        return False

    return True
