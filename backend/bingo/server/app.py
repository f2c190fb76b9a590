from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from bingo.host.audit import AuditRecorder
from bingo.host.coordinator import HostCoordinator
from bingo.logic.enums import GameStatus
from bingo.logic.exceptions import CardValidationError, GameRuleError, PersistenceError
from bingo.logic.preferences import load_host_preferences, seed_default_settings
from bingo.logic.settings import LobbySettings
from bingo.messaging.router import HostMessageRouter
from bingo.server.settings import HostServerSettings
from bingo.server.types import HostCardsRequest, HostMarkRequest, LobbySettingsUpdate
from bingo.server.websocket import websocket_endpoint
from shared.dal.models import RecordFilter
from shared.db import Database, SqliteAuditRepository, SqliteSettingsRepository
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from shared.dal.audit_repository import AuditRepository
    from shared.dal.settings_repository import SettingsRepository


_MAX_REQUEST_BODY_SIZE = 16384


class _BadRequestError(Exception):
    pass


def _coordinator(request: Request) -> HostCoordinator:
    return request.app.state.coordinator


async def _read_body[M: BaseModel](request: Request, model: type[M]) -> M:
    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            raise _BadRequestError("Request body too large")
        body = json.loads(raw_body) if raw_body else {}
        return model.model_validate(body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:  # fmt: skip
        raise _BadRequestError("Invalid request body") from e


def _rule_error(e: GameRuleError) -> JSONResponse:
    if isinstance(e, CardValidationError):
        return JSONResponse(
            {"error": str(e), "cells": [err.model_dump() for err in e.errors]},
            status_code=400,
        )
    return JSONResponse({"error": str(e)}, status_code=409)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


async def status(request: Request) -> JSONResponse:
    coordinator = _coordinator(request)
    winner = coordinator.winner
    return JSONResponse(
        {
            "status": "ok",
            "lobby_id": coordinator.lobby_id,
            "game_id": coordinator.game_id,
            "game_status": coordinator.status.value,
            "players": [
                {"id": p.id, "name": p.name, "has_card": p.has_card, "disconnected": p.disconnected}
                for p in coordinator.players
            ],
            "connections": coordinator.connection_count,
            "settings": coordinator.lobby_settings.model_dump(mode="json"),
            "called_numbers": list(coordinator.called_numbers),
            "current_number": coordinator.current_number,
            "winner": winner.name if winner is not None else None,
        },
    )


async def start_game(request: Request) -> JSONResponse:
    try:
        settings = await _coordinator(request).start_game()
    except GameRuleError as e:
        return _rule_error(e)
    return JSONResponse({"status": GameStatus.RUNNING.value, "settings": settings.model_dump(mode="json")})


async def advance(request: Request) -> JSONResponse:
    try:
        new_status = await _coordinator(request).advance()
    except GameRuleError as e:
        return _rule_error(e)
    return JSONResponse({"status": new_status.value, "current_number": _coordinator(request).current_number})


async def update_settings(request: Request) -> JSONResponse:
    try:
        update = await _read_body(request, LobbySettingsUpdate)
    except _BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    try:
        lobby = await _coordinator(request).update_lobby_settings(**update.changes())
    except GameRuleError as e:
        return _rule_error(e)
    except ValidationError:
        return JSONResponse({"error": "Invalid settings"}, status_code=400)
    return JSONResponse(lobby.model_dump(mode="json"))


async def select_host_cards(request: Request) -> JSONResponse:
    try:
        body = await _read_body(request, HostCardsRequest)
    except _BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    try:
        card_ids = await _coordinator(request).select_host_cards(body.cards)
    except GameRuleError as e:
        return _rule_error(e)
    return JSONResponse({"card_ids": list(card_ids)})


async def toggle_host_mark(request: Request) -> JSONResponse:
    try:
        body = await _read_body(request, HostMarkRequest)
    except _BadRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    changed = await _coordinator(request).toggle_host_mark(body.player_id, body.row, body.col)
    return JSONResponse({"changed": changed})


async def claim_host_bingo(request: Request) -> JSONResponse:
    coordinator = _coordinator(request)
    won = await coordinator.claim_host_bingo()
    return JSONResponse({"won": won, "status": coordinator.status.value})


async def toggle_visibility(request: Request) -> JSONResponse:
    player_id = request.path_params["player_id"]
    try:
        visible = await _coordinator(request).toggle_visibility(player_id)
    except KeyError:
        return JSONResponse({"error": "Unknown player"}, status_code=404)
    return JSONResponse({"player_id": player_id, "is_visible": visible})


async def new_lobby(request: Request) -> JSONResponse:
    """Replace a finished game with a fresh lobby. One lobby is served at a time."""
    current = _coordinator(request)
    if current.status != GameStatus.OVER:
        return JSONResponse({"error": "The current game is not over"}, status_code=409)
    await current.shutdown()
    coordinator = request.app.state.coordinator_factory()
    request.app.state.coordinator = coordinator
    request.app.state.router = HostMessageRouter(coordinator)
    logger.info("new lobby opened", lobby_id=coordinator.lobby_id, previous_game_id=current.game_id)
    return JSONResponse({"lobby_id": coordinator.lobby_id}, status_code=201)


def _audit_repository(request: Request) -> AuditRepository | None:
    return request.app.state.audit_repository


async def list_records(request: Request) -> JSONResponse:
    repository = _audit_repository(request)
    if repository is None:
        return JSONResponse({"error": "Audit storage is not configured"}, status_code=503)
    params = request.query_params
    try:
        record_filter = RecordFilter.model_validate(
            {key: params[key] for key in ("period", "host_id", "limit") if key in params},
        )
    except ValidationError:
        return JSONResponse({"error": "Invalid query"}, status_code=400)
    try:
        records = await repository.query_records(record_filter)
    except PersistenceError:
        logger.exception("failed to query audit records")
        return JSONResponse({"error": "Audit storage unavailable"}, status_code=503)
    return JSONResponse({"records": [r.model_dump(mode="json") for r in records]})


async def clear_records(request: Request) -> JSONResponse:
    repository = _audit_repository(request)
    if repository is None:
        return JSONResponse({"error": "Audit storage is not configured"}, status_code=503)
    try:
        older_than_days = int(request.query_params.get("older_than_days", ""))
    except ValueError:
        return JSONResponse({"error": "older_than_days must be an integer"}, status_code=400)
    if older_than_days < 0:
        return JSONResponse({"error": "older_than_days must not be negative"}, status_code=400)
    try:
        removed = await repository.clear_records(older_than_days)
    except PersistenceError:
        logger.exception("failed to clear audit records")
        return JSONResponse({"error": "Audit storage unavailable"}, status_code=503)
    return JSONResponse({"removed": removed})


def create_app(
    settings: HostServerSettings | None = None,
    coordinator: HostCoordinator | None = None,
    audit_repository: AuditRepository | None = None,
    settings_repository: SettingsRepository | None = None,
) -> Starlette:
    """
    Build the host application.

    Without an injected coordinator the app owns a sqlite database, seeds the
    default host preferences and opens the lobby during startup.
    """
    if settings is None:  # pragma: no cover
        settings = HostServerSettings()

    # When the app creates its own repositories, it owns the DB lifecycle.
    owned_db: Database | None = None

    if coordinator is None and audit_repository is None and settings_repository is None:
        db = Database(settings.database_path)
        db.connect()
        owned_db = db
        audit_repository = SqliteAuditRepository(db)
        settings_repository = SqliteSettingsRepository(db)

    def coordinator_factory(lobby_id: str | None = None) -> HostCoordinator:
        return HostCoordinator(
            host_id=settings.host_id,
            host_name=settings.host_name,
            lobby_id=lobby_id,
            preferences=app.state.preferences,
            lobby_settings=LobbySettings(call_interval_seconds=settings.default_call_interval_seconds),
            audit_recorder=AuditRecorder(audit_repository),
        )

    async def ws_endpoint(websocket: WebSocket) -> None:
        current: HostCoordinator = websocket.app.state.coordinator
        await websocket_endpoint(websocket, websocket.app.state.router, current.lobby_id)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/lobby/start", start_game, methods=["POST"]),
        Route("/lobby/advance", advance, methods=["POST"]),
        Route("/lobby/settings", update_settings, methods=["PUT"]),
        Route("/lobby/host-cards", select_host_cards, methods=["POST"]),
        Route("/lobby/marks", toggle_host_mark, methods=["POST"]),
        Route("/lobby/claim", claim_host_bingo, methods=["POST"]),
        Route("/lobby/players/{player_id}/visibility", toggle_visibility, methods=["POST"]),
        Route("/lobby/new", new_lobby, methods=["POST"]),
        Route("/records", list_records, methods=["GET"]),
        Route("/records", clear_records, methods=["DELETE"]),
        WebSocketRoute("/ws/{lobby_id}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        if app.state.coordinator is None:
            # PersistenceError here aborts startup.
            if settings_repository is not None:
                await seed_default_settings(settings_repository)
                app.state.preferences = await load_host_preferences(settings_repository)
            opened = coordinator_factory(settings.lobby_id)
            app.state.coordinator = opened
            app.state.router = HostMessageRouter(opened)
            logger.info("lobby opened", lobby_id=opened.lobby_id, host_id=settings.host_id)
        yield
        if app.state.coordinator is not None:
            await app.state.coordinator.shutdown()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.coordinator = coordinator
    app.state.router = HostMessageRouter(coordinator) if coordinator is not None else None
    app.state.audit_repository = audit_repository
    app.state.settings_repository = settings_repository
    app.state.preferences = coordinator.preferences if coordinator is not None else None
    app.state.coordinator_factory = coordinator_factory

    logger.info("host server ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = HostServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
