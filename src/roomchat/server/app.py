"""FastAPI application: event socket plus REST routes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

import pydantic
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roomchat._version import __version__
from roomchat.config import ChatConfig
from roomchat.core.errors import (
    AuthorizationError,
    ChatError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from roomchat.core.framework import ChatKit
from roomchat.core.session import PROTOCOL_ERROR_EVENT
from roomchat.models.wire import ClientFrame, ServerFrame
from roomchat.server.routes import router as chat_router

logger = logging.getLogger("roomchat.server")

_STATUS_BY_ERROR: dict[type[ChatError], int] = {
    ValidationError: 400,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    PersistenceError: 503,
}


def status_for(exc: ChatError) -> int:
    """HTTP status of a domain error. Room state errors map to 400."""
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status
    return 400


async def _build_kit(config: ChatConfig) -> ChatKit:
    if not config.database_url:
        return ChatKit(config=config)
    from roomchat.store.postgres import PostgresStore

    store = PostgresStore(config.database_url)
    await store.init()
    logger.info("Using PostgreSQL store")
    return ChatKit(store=store, config=config)


def create_app(kit: ChatKit | None = None, config: ChatConfig | None = None) -> FastAPI:
    """Build the HTTP application.

    Without ``kit`` one is created at startup from ``config`` (or the
    environment) and closed at shutdown.
    """
    config = config or (kit.config if kit is not None else ChatConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = kit is None
        app.state.kit = kit if kit is not None else await _build_kit(config)
        try:
            yield
        finally:
            if owned:
                await app.state.kit.close()

    app = FastAPI(title="roomchat", version=__version__, lifespan=lifespan)
    if kit is not None:
        app.state.kit = kit
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def _chat_error(request: Request, exc: ChatError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status, content={"success": False, **exc.to_dict()})

    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": detail, "kind": ValidationError.kind},
        )

    @app.get("/api/health")
    async def health() -> dict[str, object]:
        return {"success": True, "status": "ok", "version": __version__}

    @app.websocket("/ws")
    async def chat_socket(websocket: WebSocket) -> None:
        chat: ChatKit = websocket.app.state.kit
        await websocket.accept()
        connection_id = uuid4().hex

        async def send(_: str, frame: ServerFrame) -> None:
            await websocket.send_json(frame.model_dump(mode="json"))

        session = chat.connect(connection_id, send)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    frame = ClientFrame.model_validate_json(raw)
                except pydantic.ValidationError:
                    logger.warning("Unparseable frame on connection %s", connection_id)
                    await chat.hub.send(
                        connection_id,
                        PROTOCOL_ERROR_EVENT,
                        {"error": "Malformed frame", "kind": ValidationError.kind},
                    )
                    continue
                await session.dispatch(frame.event, frame.data)
        except WebSocketDisconnect:
            pass
        finally:
            await chat.disconnect(connection_id)

    app.include_router(chat_router)
    return app
