from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from mafia.messaging.encoder import DecodeError, decode
from mafia.messaging.protocol import ConnectionProtocol
from mafia.messaging.types import RouterErrorCode, extract_request_id
from mafia.server.rate_limit import TokenBucket

logger = structlog.get_logger()

if TYPE_CHECKING:
    from mafia.messaging.router import MessageRouter

# Rate limit: 20 requests/sec sustained, burst of 40.
# A client only ever sends a handful of requests per user action.
RATE_LIMIT_RATE = 20.0
RATE_LIMIT_BURST = 40

# Disconnect after this many consecutive decode errors
MAX_DECODE_ERRORS = 5

CLOSE_FORBIDDEN_ORIGIN = 4003
CLOSE_TOO_MANY_DECODE_ERRORS = 4004


class WebSocketConnection(ConnectionProtocol):
    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self._websocket = websocket
        self._connection_id = connection_id or str(uuid4())

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_bytes(self, data: bytes) -> None:
        try:
            await self._websocket.send_bytes(data)
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


def check_origin(websocket: WebSocket, allowed_origin: str | None) -> bool:
    """Accept any origin when none is configured, otherwise require an exact match."""
    if not allowed_origin:
        return True
    origin = websocket.headers.get("origin", "").rstrip("/")
    return origin == allowed_origin


async def websocket_endpoint(
    websocket: WebSocket,
    router: MessageRouter,
    *,
    allowed_origin: str | None = None,
) -> None:
    if not check_origin(websocket, allowed_origin):
        logger.warning("websocket rejected: origin not allowed", origin=websocket.headers.get("origin"))
        await websocket.close(code=CLOSE_FORBIDDEN_ORIGIN, reason="forbidden_origin")
        return

    await websocket.accept()

    connection = WebSocketConnection(websocket)
    structlog.contextvars.bind_contextvars(connection_id=connection.connection_id)
    logger.info("websocket connected")
    await router.handle_connect(connection)

    bucket = TokenBucket(rate=RATE_LIMIT_RATE, burst=RATE_LIMIT_BURST)
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()

            # Always decode to maintain the malformed-message strike counter.
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await router.send_error(connection, None, RouterErrorCode.INVALID_MESSAGE, str(e))
                if decode_errors >= MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting")
                    await connection.close(code=CLOSE_TOO_MANY_DECODE_ERRORS, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0

            if not bucket.consume():
                await router.send_error(
                    connection,
                    extract_request_id(data),
                    RouterErrorCode.RATE_LIMITED,
                    "Too many messages",
                )
                continue
            await router.handle_message(connection, data)
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        logger.info("websocket disconnected")
        await router.handle_disconnect(connection)
        structlog.contextvars.clear_contextvars()
