"""Celery task and one-shot entry point for alert passes."""

import asyncio
import logging
import sys
from typing import Optional

from redis.exceptions import LockError, RedisError

from app.core.config import settings
from app.core.database import engine
from app.core.logging import setup_logging
from app.core.redis_client import PASS_LOCK_NAME, get_sync_redis
from app.services.alert_service import AlertService, alert_service
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async code in sync context."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()
        asyncio.set_event_loop(None)


async def run_alert_pass(service: Optional[AlertService] = None) -> dict:
    """Run one pass and release pooled DB connections bound to this loop."""
    service = service or alert_service
    try:
        result = await service.run_pass()
    finally:
        await engine.dispose()
    return result.summary()


@celery_app.task(name="app.tasks.alerts.check_all_alerts")
def check_all_alerts():
    """Run one alert pass unless another worker already holds the pass lock."""
    lock = get_sync_redis().lock(PASS_LOCK_NAME, timeout=settings.ALERT_PASS_LOCK_TIMEOUT)
    if not lock.acquire(blocking=False):
        logger.warning("Alert pass already running elsewhere, skipping")
        return {"skipped": True}

    try:
        logger.info("Starting alert check for all users...")
        result = run_async(run_alert_pass())
        logger.info(
            f"Alert check completed: {result['users_checked']} users checked, "
            f"{result['alerts_checked']} alerts checked, "
            f"{result['alerts_triggered']} alerts triggered"
        )
        return result
    finally:
        try:
            lock.release()
        except (LockError, RedisError) as e:
            # Lock expired before the pass finished
            logger.warning(f"Could not release alert pass lock: {e}")


def main() -> int:
    """Run exactly one pass. Exit status 0 on completion, 1 on a top-level failure."""
    setup_logging()
    try:
        result = asyncio.run(run_alert_pass())
    except Exception as e:
        logger.exception(f"Alert pass failed: {type(e).__name__}: {e}")
        return 1

    print(
        f"Alert pass completed: {result['users_checked']} users, "
        f"{result['alerts_checked']} alerts checked, "
        f"{result['alerts_triggered']} triggered"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
