# formrelay/entrypoints/api/routers/health.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from ....db import ConnectionManager
from ....schemas import HealthOut
from ..deps import get_manager

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut)
def health(manager: ConnectionManager = Depends(get_manager)) -> HealthOut:
    # cheap: reports the cached state, does not probe the store
    return HealthOut(status="ok", store_connected=manager.connected)
