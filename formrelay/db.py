# formrelay/db.py
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from .config import settings
from .errors import StoreConnectionError
from .models import Base

log = logging.getLogger(__name__)

EngineFactory = Callable[[str], AsyncEngine]

HEALTH_CHECK_JOB_ID = "store-health-check"


def default_engine_factory(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, future=True, pool_pre_ping=True)


async def ping(engine: AsyncEngine, timeout_s: float) -> None:
    async def _select_one() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    await asyncio.wait_for(_select_one(), timeout=timeout_s)


class ConnectionManager:
    """
    Owns the one process-wide engine.

    - acquire() hands out a probed engine, connecting lazily.
    - Connection establishment is single-flight: concurrent callers await
      the one in-flight task and get its engine or its failure.
    - A background APScheduler job re-probes the engine; a failed probe only
      drops the cached engine so the next acquire() reconnects.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        engine_factory: EngineFactory | None = None,
        max_attempts: int | None = None,
        initial_delay_s: float | None = None,
        connect_timeout_s: float | None = None,
        probe_timeout_s: float | None = None,
        health_check_timeout_s: float | None = None,
        health_check_interval_s: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url or settings.RELAY_DB_URL
        self._engine_factory = engine_factory or default_engine_factory

        self.max_attempts = max_attempts or settings.DB_CONNECT_MAX_ATTEMPTS
        self.initial_delay_s = settings.DB_CONNECT_INITIAL_DELAY_S if initial_delay_s is None else initial_delay_s
        self.connect_timeout_s = connect_timeout_s or settings.DB_CONNECT_TIMEOUT_S
        self.probe_timeout_s = probe_timeout_s or settings.DB_PROBE_TIMEOUT_S
        self.health_check_timeout_s = health_check_timeout_s or settings.DB_HEALTH_CHECK_TIMEOUT_S
        self.health_check_interval_s = (
            settings.DB_HEALTH_CHECK_INTERVAL_S if health_check_interval_s is None else health_check_interval_s
        )
        self._sleep = sleep

        self._engine: AsyncEngine | None = None
        self._connecting: asyncio.Future[AsyncEngine] | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self.last_error: BaseException | None = None

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def acquire(self) -> AsyncEngine:
        engine = self._engine
        if engine is not None and self._connecting is None:
            if await self._is_ready(engine, self.probe_timeout_s):
                return engine
            if self._engine is engine:
                self._engine = None
                await self._dispose_quietly(engine)

        if self._connecting is None:
            if self._engine is not None:
                # reconnected by someone else while we were probing
                return self._engine
            self._connecting = asyncio.ensure_future(self._establish())

        # every caller shares the one sequence: same engine or same StoreConnectionError
        return await asyncio.shield(self._connecting)

    async def _establish(self) -> AsyncEngine:
        try:
            return await self._connect_with_retry()
        finally:
            self._connecting = None

    async def _connect_with_retry(self) -> AsyncEngine:
        for attempt in range(1, self.max_attempts + 1):
            log.info("Store connection attempt %d/%d", attempt, self.max_attempts)
            engine: AsyncEngine | None = None
            try:
                engine = self._engine_factory(self.url)
                await ping(engine, self.connect_timeout_s)
            except Exception as e:
                self.last_error = e
                log.warning("Store connection attempt %d failed: %r", attempt, e)
                if engine is not None:
                    await self._dispose_quietly(engine)

                if attempt >= self.max_attempts:
                    break
                delay = self.initial_delay_s * (2 ** (attempt - 1))
                log.info("Retrying store connection in %.1fs", delay)
                await self._sleep(delay)
                continue

            self._engine = engine
            self.last_error = None
            log.info("Store connection established")
            self._start_health_checks()
            return engine

        log.error("All %d store connection attempts failed", self.max_attempts)
        raise StoreConnectionError(
            f"Database connection failed after {self.max_attempts} attempts: {self.last_error!r}"
        ) from self.last_error

    async def _is_ready(self, engine: AsyncEngine, timeout_s: float) -> bool:
        try:
            await ping(engine, timeout_s)
            return True
        except Exception as e:
            log.warning("Store readiness check failed: %r", e)
            return False

    async def _invalidate(self, engine: AsyncEngine) -> None:
        if self._engine is engine:
            self._engine = None
        await self._dispose_quietly(engine)

    @staticmethod
    async def _dispose_quietly(engine: AsyncEngine) -> None:
        try:
            await engine.dispose()
        except Exception as e:
            log.warning("Engine dispose failed: %r", e)

    # --- health checks ---

    def _start_health_checks(self) -> None:
        if self.health_check_interval_s <= 0:
            return

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.start()

        self._scheduler.add_job(
            self.health_check,
            "interval",
            seconds=self.health_check_interval_s,
            id=HEALTH_CHECK_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def health_check(self) -> bool:
        """
        One probe of the cached engine. Never raises.
        Returns False (and forgets the engine) when the store is not ready.
        """
        engine = self._engine
        if engine is None:
            return False

        if await self._is_ready(engine, self.health_check_timeout_s):
            return True

        log.warning("Store not ready, resetting connection")
        await self._invalidate(engine)
        return False

    async def shutdown(self) -> None:
        if self._connecting is not None:
            self._connecting.cancel()
            self._connecting = None

        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        engine, self._engine = self._engine, None
        if engine is not None:
            await self._dispose_quietly(engine)
        log.info("Store connection released")

    # --- sessions ---

    async def create_all(self) -> None:
        engine = await self.acquire()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        engine = await self.acquire()
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session


manager = ConnectionManager()


@asynccontextmanager
async def async_session() -> AsyncIterator[AsyncSession]:
    """
    Convenience context manager used in scripts.
    """
    async with manager.session() as session:
        yield session
