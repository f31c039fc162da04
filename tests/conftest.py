# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from formrelay.adapters.repos.submissions import SubmissionStore
from formrelay.db import ConnectionManager
from formrelay.domain.types import SubmissionRecord
from formrelay.models import Base

PHONE = "+79991234567"
KEY = "0123456789abcdef0123456789abcdef"
T0 = datetime(2026, 1, 15, 12, 0, 0)


def memory_engine(url: str = "sqlite+aiosqlite:///:memory:"):
    """
    StaticPool makes all connections share the same in-memory database for
    the lifetime of the engine.
    """
    return create_async_engine(
        url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test.
    """
    engine = memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
def seed(async_session_maker):
    """
    seed(phone=..., at=..., raw=..., key=...) stores one submission.
    """

    async def _submission(
        phone: str = PHONE,
        at: datetime = T0,
        raw: dict | None = None,
        key: str | None = KEY,
        sid: str | None = None,
    ) -> SubmissionRecord:
        rec = SubmissionRecord(
            id=sid or f"sub-{at.timestamp():.0f}-{phone}",
            timestamp=at,
            phone=phone,
            source="example.com",
            raw_data=raw if raw is not None else {"Name": "A", "Phone": phone},
            verification_key=key,
        )
        async with async_session_maker() as session:
            store = SubmissionStore(session)
            await store.insert_raw_submission(rec)
            await store.commit()
        return rec

    return _submission


@pytest.fixture
def seed_endpoint(async_session_maker):
    async def _endpoint(key: str = KEY, url: str = "https://client.example/hook", enabled: bool = True):
        async with async_session_maker() as session:
            store = SubmissionStore(session)
            ep = await store.create_webhook_endpoint(key, url, enabled=enabled)
            await store.commit()
        return ep

    return _endpoint


class RecordingWebhook:
    """httpx MockTransport that remembers every request it served."""

    def __init__(self, status_code: int = 200, text: str = "ok", exc: Exception | None = None) -> None:
        self.status_code = status_code
        self.text = text
        self.exc = exc
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, text=self.text)


@pytest.fixture
def webhook() -> RecordingWebhook:
    return RecordingWebhook()


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
async def manager():
    m = ConnectionManager(
        "sqlite+aiosqlite:///:memory:",
        engine_factory=memory_engine,
        health_check_interval_s=0,
        sleep=_no_sleep,
    )
    try:
        yield m
    finally:
        await m.shutdown()


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)
