from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from taskfiles_backend.config import settings
from taskfiles_backend.db import dispose_engine_cache
from taskfiles_backend.error_handlers import register_error_handlers
from taskfiles_backend.routers import attachments
from taskfiles_backend.schemas_common import HealthResponse
from taskfiles_backend.services.maintenance import start_maintenance_tasks, stop_maintenance_tasks


class RequestIdMiddleware:
    """Accept X-Request-Id from the client or mint one, expose it on request.state and echo it."""

    def __init__(self, app: ASGIApp) -> None:
        self.app: ASGIApp = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        inbound: bytes | None = None
        for key, value in cast(list[tuple[bytes, bytes]], scope.get("headers") or []):
            if key.lower() == b"x-request-id":
                inbound = value.strip() or None
                break

        # latin-1 maps bytes to str one to one.
        request_id = inbound.decode("latin-1") if inbound else str(uuid.uuid4())
        header_value = request_id.encode("latin-1")
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers = [
                    (k, v)
                    for (k, v) in cast(list[tuple[bytes, bytes]], message.get("headers", []))
                    if k.lower() != b"x-request-id"
                ]
                headers.append((b"x-request-id", header_value))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_request_id)


logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

logger = logging.getLogger(__name__)
for msg in settings.security_warnings():
    logger.warning("SECURITY WARNING: %s", msg)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    maintenance: list[asyncio.Task[None]] = []
    if settings.maintenance_enabled:
        maintenance = start_maintenance_tasks()
    try:
        yield
    finally:
        if maintenance:
            await stop_maintenance_tasks(maintenance)
        # Ensure sqlite/aiosqlite worker threads don't keep the process alive.
        dispose_engine_cache()


app = FastAPI(title=settings.app_name, lifespan=_lifespan)

app.add_middleware(RequestIdMiddleware)

origins = settings.cors_origins_list()
if origins == ["*"]:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
elif origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_error_handlers(app)


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse()


app.include_router(attachments.router, prefix=settings.api_prefix)
