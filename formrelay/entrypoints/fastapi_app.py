# formrelay/entrypoints/fastapi_app.py
from __future__ import annotations

import logging

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import settings
from ..db import ConnectionManager, manager as default_manager
from ..errors import StoreConnectionError
from .api.routers import endpoints, health, relay

log = logging.getLogger(__name__)


def create_app(
    manager: ConnectionManager | None = None,
    webhook_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    app = FastAPI(title="formrelay - form intake & phone verification relay")
    app.state.manager = manager or default_manager
    app.state.webhook_transport = webhook_transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        # Single place where DB tables are created in dev.
        try:
            await app.state.manager.create_all()
        except StoreConnectionError as e:
            # keep serving; requests answer 503 until the store is back
            log.error("Store unavailable at startup: %s", e)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.manager.shutdown()

    # Routers
    app.include_router(health.router)
    app.include_router(relay.router)
    app.include_router(endpoints.router)

    return app
