"""Session ticket signing shared by the room server and its tests."""

from shared.auth.session_ticket import (
    TICKET_TTL_SECONDS,
    SessionTicket,
    create_session_ticket,
    new_ticket_nonce,
    sign_session_ticket,
    verify_session_ticket,
)

__all__ = [
    "TICKET_TTL_SECONDS",
    "SessionTicket",
    "create_session_ticket",
    "new_ticket_nonce",
    "sign_session_ticket",
    "verify_session_ticket",
]
