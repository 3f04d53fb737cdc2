from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from mathhack.logic.enums import SessionErrorCode
from mathhack.logic.exceptions import (
    CodeAllocationError,
    ConflictError,
    ContestError,
    NotFoundError,
    RequestValidationError,
    ServerCapacityError,
)
from mathhack.logic.powerups import POWER_UPS
from mathhack.messaging.router import MessageRouter
from mathhack.server.settings import ContestServerSettings
from mathhack.server.types import CreateSessionRequest, JoinSessionRequest
from mathhack.server.websocket import websocket_endpoint
from mathhack.session.manager import SessionManager
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from mathhack.logic.types import PlayerRecord, SessionRecord

_MAX_REQUEST_BODY_SIZE = 4096

_STATUS_BY_ERROR: tuple[tuple[type[ContestError], int], ...] = (
    (RequestValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (CodeAllocationError, 503),
    (ServerCapacityError, 503),
)


def _error_response(
    message: str,
    status_code: int,
    code: SessionErrorCode = SessionErrorCode.INVALID_REQUEST,
) -> JSONResponse:
    return JSONResponse({"error": message, "code": code.value}, status_code=status_code)


def _contest_error_response(error: ContestError) -> JSONResponse:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return _error_response(error.message, status_code, error.code)
    return _error_response(error.message, 400, error.code)


async def _read_json(request: Request) -> object:
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        raise ValueError("request body too large")
    return json.loads(raw_body)


def _session_payload(session: SessionRecord, player: PlayerRecord, log_window: int) -> dict[str, object]:
    return {"session": session.view(log_window), "player": player.to_wire()}


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: ContestServerSettings = request.app.state.settings
    counts = session_manager.session_counts()
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "waiting_sessions": counts["waiting"],
            "active_sessions": counts["active"],
            "finished_sessions": counts["finished"],
            "connections": session_manager.connection_count,
            "max_sessions": settings.max_sessions,
        },
    )


async def create_session(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    try:
        body = await _read_json(request)
        create_request = CreateSessionRequest.model_validate(body)
    except (ValueError, TypeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return _error_response("Invalid request body", 400)

    try:
        session, host = await session_manager.create_session(
            host_id=create_request.host_id,
            host_name=create_request.host_name,
            max_players=create_request.max_players,
            game_duration=create_request.game_duration,
        )
    except ContestError as e:
        logger.warning("session create rejected", error_code=e.code, error_message=e.message)
        return _contest_error_response(e)

    return JSONResponse(
        _session_payload(session, host, session_manager.settings.log_broadcast_window),
        status_code=201,
    )


async def join_session(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    try:
        body = await _read_json(request)
        join_request = JoinSessionRequest.model_validate(body)
    except (ValueError, TypeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return _error_response("Invalid request body", 400)

    try:
        session, player = await session_manager.join_by_code(
            code=join_request.code,
            player_id=join_request.player_id,
            name=join_request.name,
        )
    except ContestError as e:
        logger.info("session join rejected", error_code=e.code, error_message=e.message)
        return _contest_error_response(e)

    return JSONResponse(_session_payload(session, player, session_manager.settings.log_broadcast_window))


async def session_state(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    session_id: int = request.path_params["session_id"]
    try:
        state = await session_manager.get_state(session_id, request.query_params.get("playerId"))
    except ContestError as e:
        return _contest_error_response(e)
    return JSONResponse(state)


async def power_ups(_request: Request) -> JSONResponse:
    return JSONResponse([power_up.model_dump(mode="json", by_alias=True) for power_up in POWER_UPS.values()])


def create_app(
    settings: ContestServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = ContestServerSettings()

    if session_manager is None:
        session_manager = SessionManager(
            settings.contest_settings(),
            max_sessions=settings.max_sessions,
            code_attempts=settings.code_allocation_attempts,
            heartbeat_timeout_seconds=settings.heartbeat_timeout_seconds,
            heartbeat_check_interval_seconds=settings.heartbeat_check_interval_seconds,
            effect_sweep_interval_seconds=settings.effect_sweep_interval_seconds,
            finished_retention_seconds=settings.finished_session_retention_seconds,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, max_decode_errors=settings.max_decode_errors)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/api/game/create", create_session, methods=["POST"]),
        Route("/api/game/join", join_session, methods=["POST"]),
        Route("/api/game/{session_id:int}/state", session_state, methods=["GET"]),
        Route("/api/powerups", power_ups, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        await session_manager.shutdown()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager

    logger.info("contest server ready", max_sessions=settings.max_sessions)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = ContestServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
