"""Fetch tasks.

Runs the incremental on-chain portrait sync on the beat schedule.
"""

import asyncio
import logging

from portraitdex_worker.celery_app import app

logger = logging.getLogger(__name__)


@app.task(name="fetch.run_sync", bind=True)
def run_sync(self) -> dict:
    """Run one fetch job unless a previous run still holds the lock.

    Returns:
        Dictionary with the run outcome, or status "skipped".
    """
    # Import here to avoid circular imports
    from redis import Redis

    from portraitdex_core.config import get_settings
    from portraitdex_core.domain.services.reconciliation import run_fetch_job
    from portraitdex_worker.util.run_lock import RunLock

    settings = get_settings()
    lock = RunLock(
        Redis.from_url(settings.redis_url),
        name=settings.fetch_job_name,
        ttl_seconds=settings.fetch_lock_ttl_seconds,
    )

    if not lock.acquire_lock():
        logger.info("Previous fetch run still in progress, skipping")
        return {
            "status": "skipped",
            "reason": "previous run still in progress",
        }

    try:
        result = asyncio.run(run_fetch_job(settings))
        return result.to_dict()
    except Exception as e:
        logger.exception(f"Fetch job crashed: {e}")
        return {
            "status": "error",
            "error": str(e),
        }
    finally:
        lock.release_lock()
