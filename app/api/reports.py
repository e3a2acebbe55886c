"""
Report API Routes
Synchronous generation, queued creation and job status polling.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.exceptions import RedisError

from app.api.deps import get_job_store, get_queue_manager, get_report_generator
from app.core.exceptions import error_response
from app.schemas.job import JobResponse, JobStatus, JobUpdate
from app.schemas.report import (
    CreateReportRequest,
    CreateReportResponse,
    GenerateReportRequest,
    GenerateReportResponse,
)
from app.services.job_store import JobStore, PersistenceError
from app.workers.base import GenerationError
from app.workers.generator import ReportGenerator, ShuttingDownError
from app.workers.queue import QueueManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate-report", response_model=GenerateReportResponse)
async def generate_report(
    request: GenerateReportRequest,
    store: JobStore = Depends(get_job_store),
    generator: ReportGenerator = Depends(get_report_generator),
):
    """
    Generate the PDF for an existing job and wait for the result.

    Intermediate attempt failures are only visible by polling the job.
    """
    logger.info(
        f"[API] Payload received: job={request.job_id} brand={request.brand_id} "
        f"level={request.level} campaigns={len(request.campaign_ids)} "
        f"locations={len(request.location_ids)} from={request.from_date} to={request.to_date} "
        f"baseURL={request.base_url}"
    )

    if not generator.accepting:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Server is shutting down")

    job = store.get_job(request.job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if JobStatus(job.status).is_terminal:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job {request.job_id} already finished with status {job.status}",
        )

    try:
        result = await generator.generate_report(request)
    except ShuttingDownError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    except (GenerationError, PersistenceError) as e:
        logger.error(f"[API] Report generation failed: {e}")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            str(e),
            timestamp=datetime.utcnow().isoformat(),
        )

    return GenerateReportResponse(
        url=result.url,
        loaded_charts=result.loaded_charts,
        failed_charts=result.failed_charts,
    )


@router.post("/reports", response_model=CreateReportResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_report(
    request: CreateReportRequest,
    store: JobStore = Depends(get_job_store),
    queue: QueueManager = Depends(get_queue_manager),
):
    """Create a report job and hand it to the worker queue."""
    try:
        job_id = store.create_job(request)
    except PersistenceError as e:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

    try:
        queue.enqueue_report(job_id, request.base_url, request.selectors)
    except RedisError as e:
        logger.error(f"[API] Could not enqueue job {job_id}: {e}")
        message = f"Could not enqueue report: {e}"
        try:
            store.update_job(job_id, JobUpdate(status=JobStatus.FAILED, progress=0, error=message))
        except PersistenceError as update_error:
            logger.error(f"[API] Could not mark job {job_id} failed: {update_error}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)

    return CreateReportResponse(
        job_id=job_id,
        status=JobStatus.PENDING.value,
        message="Report queued",
    )


@router.get("/reports/{job_id}", response_model=JobResponse)
async def get_report(
    job_id: str,
    store: JobStore = Depends(get_job_store),
):
    """Get job status and, once finished, its download URL."""
    job = store.get_job(job_id)

    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    return job


@router.get("/reports", response_model=List[JobResponse])
async def list_reports(
    brand_id: Optional[str] = Query(default=None, alias="brandId"),
    job_status: Optional[JobStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    store: JobStore = Depends(get_job_store),
):
    """List jobs with optional filters."""
    try:
        return store.list_jobs(brand_id=brand_id, status=job_status, limit=limit, offset=offset)
    except PersistenceError as e:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
