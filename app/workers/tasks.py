"""
RQ Task Definitions
Defines the task functions executed by report workers.
"""

import logging
import asyncio
from typing import Any, Dict, List, Optional

from app.workers.base import GenerationError

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Helper to run async code in sync context (for RQ)."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def run_report_generation_task(
    job_id: str,
    base_url: str,
    selectors: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    RQ task for report generation.

    Loads the job parameters from the store and runs the same pipeline as
    the synchronous endpoint, with a browser owned by this task.

    Args:
        job_id: Report job id
        base_url: Dashboard base URL
        selectors: Optional chart names overriding the defaults

    Returns:
        Dict with job results
    """
    logger.info(f"[Task] Starting report generation: {job_id}")

    async def _generate():
        from app.schemas.report import GenerateReportRequest
        from app.services.browser import BrowserManager
        from app.services.job_store import JobStore
        from app.services.storage import StorageService
        from app.workers.generator import ReportGenerator

        store = JobStore()
        job = store.get_job(job_id)
        if job is None:
            raise GenerationError(f"Job not found: {job_id}")

        request = GenerateReportRequest(
            job_id=job.id,
            base_url=base_url,
            brand_id=job.brand_id,
            level=job.level,
            campaign_ids=job.campaign_ids,
            location_ids=job.location_ids,
            from_date=job.from_date,
            to_date=job.to_date,
            currency=job.currency,
            time_zone=job.time_zone,
            home_page_details=job.home_page_details,
            logo=job.logo,
            selectors=selectors,
        )

        browser = BrowserManager()
        generator = ReportGenerator(store, StorageService(), browser)
        try:
            result = await generator.generate_report(request)
        finally:
            await browser.close()

        logger.info(f"[Task] Completed: {job_id} after {result.attempts} attempt(s)")
        return {
            "job_id": job_id,
            "status": "Download",
            "url": result.url,
            "loaded_charts": result.loaded_charts,
            "failed_charts": result.failed_charts,
        }

    return _run_async(_generate())


__all__ = [
    "run_report_generation_task",
]
