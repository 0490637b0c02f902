"""Interval poller tests."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.alert_scheduler import AlertPoller
from app.services.alert_service import AlertService, PassResult


class BlockingService:
    """Pass that waits until released."""

    def __init__(self):
        self.calls = 0
        self.release = asyncio.Event()

    async def run_pass(self):
        self.calls += 1
        await self.release.wait()
        return PassResult(users_checked=1)


class FlakyService:
    def __init__(self):
        self.calls = 0

    async def run_pass(self):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("store down")
        return PassResult(users_checked=3)


class SlowPriceSource:
    def __init__(self, prices):
        self.prices = prices

    async def fetch_prices(self, token_ids):
        ids = set(token_ids)
        await asyncio.sleep(0.05)
        return {t: p for t, p in self.prices.items() if t in ids}


class SharedLocks:
    """In-memory pass lock shared by every poller built with it."""

    def __init__(self):
        self.held = False
        self.acquired = 0
        self.released = 0

    async def __call__(self):
        return _SharedLock(self)


class _SharedLock:
    def __init__(self, locks: SharedLocks):
        self.locks = locks

    async def acquire(self, blocking=True):
        if self.locks.held:
            return False
        self.locks.held = True
        self.locks.acquired += 1
        return True

    async def release(self):
        self.locks.held = False
        self.locks.released += 1


@pytest.fixture
def locks() -> SharedLocks:
    return SharedLocks()


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped(locks):
    service = BlockingService()
    poller = AlertPoller(service=service, interval=60, lock_factory=locks)

    first = asyncio.create_task(poller.run_once())
    await asyncio.sleep(0)
    skipped = await poller.run_once()

    assert skipped is None
    assert service.calls == 1

    service.release.set()
    result = await first
    assert result.users_checked == 1


@pytest.mark.asyncio
async def test_failed_pass_does_not_stop_polling(locks):
    service = FlakyService()
    poller = AlertPoller(service=service, interval=60, lock_factory=locks)

    assert await poller.run_once() is None
    result = await poller.run_once()

    assert result.users_checked == 3
    assert service.calls == 2
    # Released after the failed pass too
    assert locks.released == 2
    assert not locks.held


@pytest.mark.asyncio
async def test_start_runs_immediately_and_repeats(locks):
    service = FlakyService()
    poller = AlertPoller(service=service, interval=0.05, lock_factory=locks)

    poller.start()
    assert poller.running
    await asyncio.sleep(0.01)
    assert service.calls == 1

    await asyncio.sleep(0.12)
    await poller.stop()

    assert service.calls >= 2
    assert not poller.running


@pytest.mark.asyncio
async def test_pollers_in_separate_workers_count_one_trigger_per_tick(
    store, dispatcher, user_id, make_alert, locks
):
    alert = store.add(make_alert(user_id, "bitcoin", 1))
    prices = SlowPriceSource({"bitcoin": 10.0})
    pollers = [
        AlertPoller(
            service=AlertService(store=store, prices=prices, dispatcher=dispatcher, push=None),
            interval=60,
            lock_factory=locks,
        )
        for _ in range(2)
    ]

    results = await asyncio.gather(*(p.run_once() for p in pollers))

    assert alert.triggered_count == 1
    assert len(store.trigger_calls) == 1
    assert len(store.history) == 1
    assert sum(1 for r in results if r is None) == 1
    assert not locks.held


@pytest.mark.asyncio
async def test_tick_skipped_while_lock_held_elsewhere(locks):
    service = FlakyService()
    poller = AlertPoller(service=service, interval=60, lock_factory=locks)
    locks.held = True

    assert await poller.run_once() is None
    assert service.calls == 0
    assert locks.released == 0


@pytest.mark.asyncio
async def test_tick_skipped_when_redis_unreachable():
    service = FlakyService()

    async def unreachable():
        raise RedisConnectionError("connection refused")

    poller = AlertPoller(service=service, interval=60, lock_factory=unreachable)

    assert await poller.run_once() is None
    assert service.calls == 0
