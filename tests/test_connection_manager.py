import asyncio

import pytest
from sqlalchemy import text

import formrelay.db as db
from conftest import memory_engine
from formrelay.db import HEALTH_CHECK_JOB_ID, ConnectionManager
from formrelay.errors import StoreConnectionError


class CountingFactory:
    def __init__(self, fail_times: int = 0) -> None:
        self.calls = 0
        self.fail_times = fail_times

    def __call__(self, url: str):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise OSError(f"name resolution failed (call {self.calls})")
        return memory_engine(url)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _manager(factory, sleep=None, **kw) -> ConnectionManager:
    kw.setdefault("health_check_interval_s", 0)
    return ConnectionManager(
        "sqlite+aiosqlite:///:memory:",
        engine_factory=factory,
        sleep=sleep or SleepRecorder(),
        **kw,
    )


@pytest.mark.asyncio
async def test_acquire_reuses_cached_engine():
    factory = CountingFactory()
    m = _manager(factory)
    try:
        e1 = await m.acquire()
        e2 = await m.acquire()
    finally:
        await m.shutdown()

    assert e1 is e2
    assert factory.calls == 1


@pytest.mark.asyncio
async def test_concurrent_acquire_connects_once():
    factory = CountingFactory()
    m = _manager(factory)
    try:
        engines = await asyncio.gather(*(m.acquire() for _ in range(20)))
    finally:
        await m.shutdown()

    assert factory.calls == 1
    assert all(e is engines[0] for e in engines)


@pytest.mark.asyncio
async def test_retries_with_exponential_backoff_then_succeeds():
    factory = CountingFactory(fail_times=3)
    sleep = SleepRecorder()
    m = _manager(factory, sleep=sleep, initial_delay_s=1.0)
    try:
        await m.acquire()
        assert m.last_error is None
    finally:
        await m.shutdown()

    assert factory.calls == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    factory = CountingFactory(fail_times=100)
    sleep = SleepRecorder()
    m = _manager(factory, sleep=sleep, max_attempts=5, initial_delay_s=0.5)

    with pytest.raises(StoreConnectionError) as ei:
        await m.acquire()

    assert factory.calls == 5
    assert sleep.delays == [0.5, 1.0, 2.0, 4.0]
    assert isinstance(ei.value.__cause__, OSError)
    assert isinstance(m.last_error, OSError)
    assert "call 5" in str(m.last_error)
    assert m.connected is False


@pytest.mark.asyncio
async def test_health_check_failure_drops_engine(monkeypatch):
    factory = CountingFactory()
    m = _manager(factory)
    try:
        await m.acquire()
        assert await m.health_check() is True

        async def _broken_ping(engine, timeout_s):
            raise TimeoutError("not ready")

        monkeypatch.setattr(db, "ping", _broken_ping)
        assert await m.health_check() is False
        assert m.connected is False

        monkeypatch.undo()
        await m.acquire()
        assert factory.calls == 2
    finally:
        await m.shutdown()


@pytest.mark.asyncio
async def test_health_check_without_engine_is_noop():
    m = _manager(CountingFactory())
    assert await m.health_check() is False


@pytest.mark.asyncio
async def test_failed_probe_on_acquire_reconnects(monkeypatch):
    factory = CountingFactory()
    m = _manager(factory)
    try:
        first = await m.acquire()

        real_ping = db.ping

        async def _ping(engine, timeout_s):
            if engine is first:
                raise ConnectionResetError("gone")
            await real_ping(engine, timeout_s)

        monkeypatch.setattr(db, "ping", _ping)
        second = await m.acquire()
    finally:
        await m.shutdown()

    assert second is not first
    assert factory.calls == 2


@pytest.mark.asyncio
async def test_health_job_scheduled_and_stopped_on_shutdown():
    m = _manager(CountingFactory(), health_check_interval_s=30)
    await m.acquire()

    scheduler = m._scheduler
    assert scheduler is not None
    job = scheduler.get_job(HEALTH_CHECK_JOB_ID)
    assert job is not None
    assert job.trigger.interval.total_seconds() == 30

    await m.shutdown()
    assert m._scheduler is None
    assert m.connected is False


@pytest.mark.asyncio
async def test_session_runs_queries(manager):
    await manager.create_all()
    async with manager.session() as session:
        assert (await session.execute(text("SELECT 1"))).scalar_one() == 1


@pytest.mark.asyncio
async def test_concurrent_acquire_shares_one_failed_sequence():
    factory = CountingFactory(fail_times=100)
    sleep = SleepRecorder()
    m = _manager(factory, sleep=sleep, max_attempts=5, initial_delay_s=1.0)

    results = await asyncio.gather(*(m.acquire() for _ in range(4)), return_exceptions=True)

    assert factory.calls == 5
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0]
    assert all(isinstance(r, StoreConnectionError) for r in results)
    assert len({id(r) for r in results}) == 1


@pytest.mark.asyncio
async def test_acquire_after_failed_sequence_starts_a_new_one():
    factory = CountingFactory(fail_times=2)
    m = _manager(factory, max_attempts=2)
    try:
        with pytest.raises(StoreConnectionError):
            await m.acquire()

        await m.acquire()
        assert m.connected is True
    finally:
        await m.shutdown()

    assert factory.calls == 3
