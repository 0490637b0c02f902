"""In-process interval driver for alert passes."""

import asyncio
import logging
from typing import Optional

from redis.exceptions import LockError, RedisError

from app.core.config import settings
from app.core.redis_client import get_pass_lock
from app.services.alert_service import AlertService, PassResult, alert_service

logger = logging.getLogger(__name__)


class AlertPoller:
    """Runs a pass immediately, then once per interval until stopped.

    Passes never overlap: a tick that finds the previous pass still running
    in this process is skipped, and so is a tick that finds the shared Redis
    pass lock held by another API worker or by Celery. `lock_factory` is an
    async callable returning a lock with `acquire(blocking=False)` and
    `release()` coroutines.
    """

    def __init__(
        self,
        service: AlertService = alert_service,
        interval: Optional[float] = None,
        lock_factory=get_pass_lock,
    ):
        self.service = service
        self.interval = interval or settings.ALERT_CHECK_INTERVAL_SECONDS
        self._lock_factory = lock_factory
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._pending: set = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[PassResult]:
        """Run one guarded pass. Returns None if skipped or failed."""
        if self._lock.locked():
            logger.warning("Previous alert pass still running, skipping this tick")
            return None

        async with self._lock:
            try:
                pass_lock = await self._lock_factory()
                acquired = await pass_lock.acquire(blocking=False)
            except RedisError as e:
                logger.error(f"Could not take alert pass lock, skipping this tick: {e}")
                return None
            if not acquired:
                logger.warning("Alert pass already running elsewhere, skipping this tick")
                return None

            try:
                return await self.service.run_pass()
            except Exception as e:
                logger.error(f"Alert pass failed: {type(e).__name__}: {e}")
                return None
            finally:
                try:
                    await pass_lock.release()
                except (LockError, RedisError) as e:
                    # Lock expired before the pass finished
                    logger.warning(f"Could not release alert pass lock: {e}")

    async def _loop(self) -> None:
        while True:
            # Ticks are not delayed by a slow pass
            tick = asyncio.create_task(self.run_once())
            self._pending.add(tick)
            tick.add_done_callback(self._pending.discard)
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        logger.info("Alert poller started", extra={"interval_seconds": self.interval})
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Alert poller stopped")
