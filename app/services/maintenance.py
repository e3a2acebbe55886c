"""
Maintenance
Periodic sweep that purges expired report jobs.
"""

import asyncio
import logging

from app.services.job_store import JobStore

logger = logging.getLogger(__name__)


async def run_cleanup_loop(job_store: JobStore, interval_minutes: float, ttl_hours: float):
    """Delete jobs older than ttl_hours every interval_minutes until cancelled."""
    logger.info(f"[Cleanup] Sweeping jobs older than {ttl_hours}h every {interval_minutes} min")
    while True:
        try:
            deleted = await asyncio.to_thread(job_store.cleanup_old_jobs, ttl_hours)
            logger.debug(f"[Cleanup] Sweep removed {deleted} jobs")
        except Exception as e:
            logger.error(f"[Cleanup] Sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval_minutes * 60)
