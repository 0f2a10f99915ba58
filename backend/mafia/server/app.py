from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from mafia.messaging.router import MessageRouter
from mafia.rooms.registry import RoomRegistry
from mafia.server.settings import MafiaServerSettings
from mafia.server.websocket import websocket_endpoint
from mafia.session.bridge import SessionBridge
from mafia.session.broadcast import ConnectionHub
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    registry: RoomRegistry = request.app.state.registry
    hub: ConnectionHub = request.app.state.hub
    bridge: SessionBridge = request.app.state.bridge
    settings: MafiaServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "rooms": registry.room_count,
            "started_rooms": registry.started_room_count,
            "connections": hub.connection_count,
            "pending_disconnects": bridge.pending_disconnects,
            "max_rooms": settings.max_rooms,
        },
    )


async def list_rooms(request: Request) -> JSONResponse:
    bridge: SessionBridge = request.app.state.bridge
    return JSONResponse(bridge.list_available_rooms())


def create_app(
    settings: MafiaServerSettings | None = None,
    registry: RoomRegistry | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = MafiaServerSettings()  # ty: ignore[missing-argument]

    if registry is None:
        registry = RoomRegistry(
            max_rooms=settings.max_rooms,
            room_max_idle_seconds=settings.room_max_idle_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )

    hub = ConnectionHub()
    bridge = SessionBridge(
        registry,
        hub,
        session_secret=settings.session_secret,
        disconnect_grace_seconds=settings.disconnect_grace_seconds,
    )
    message_router = MessageRouter(bridge)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, allowed_origin=settings.ws_allowed_origin)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/rooms", list_rooms, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        registry.start_reaper()
        yield
        await registry.stop_reaper()
        bridge.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.hub = hub
    app.state.bridge = bridge

    logger.info("room server ready", max_rooms=settings.max_rooms)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = MafiaServerSettings()  # ty: ignore[missing-argument]
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
