# formrelay/entrypoints/api/deps.py
from __future__ import annotations

from typing import AsyncIterator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...db import ConnectionManager


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.manager


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency that yields a session from the app's connection manager.
    """
    async with get_manager(request).session() as session:
        yield session
