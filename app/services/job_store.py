"""
Job Store
Persistence facade over the report_jobs table.

Stateless: every call opens and closes its own session. There is no locking;
concurrent updates to the same row are last-write-wins per statement.
"""

import logging
import secrets
import string
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models.job import ReportJob
from app.schemas.job import JobStatus, JobUpdate
from app.schemas.report import ReportParameters

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


class PersistenceError(Exception):
    """A job-state read or write did not succeed."""


def generate_job_id() -> str:
    """report_<epoch millis>_<8 base36 chars>"""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
    return f"report_{int(time.time() * 1000)}_{suffix}"


class JobStore:
    """CRUD operations for report jobs."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def create_job(self, parameters: ReportParameters) -> str:
        """
        Persist a new pending job.

        Returns:
            The generated job id

        Raises:
            PersistenceError: if the row could not be written
        """
        job_id = generate_job_id()
        db = self._session_factory()
        try:
            db.add(ReportJob(
                id=job_id,
                brand_id=parameters.brand_id,
                campaign_ids=parameters.campaign_ids,
                location_ids=parameters.location_ids,
                from_date=parameters.from_date,
                to_date=parameters.to_date,
                home_page_details=parameters.home_page_details,
                logo=parameters.logo,
                currency=parameters.currency,
                time_zone=parameters.time_zone,
                level=parameters.level,
                status=JobStatus.PENDING.value,
                progress=0,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[JobStore] Failed to create job: {e}")
            raise PersistenceError(f"Failed to create job: {e}") from e
        finally:
            db.close()

        logger.info(f"[JobStore] Created job {job_id} for brand {parameters.brand_id}")
        return job_id

    def get_job(self, job_id: str) -> Optional[ReportJob]:
        """
        Get the current record for a job.

        Read failures are reported as None, the same as a missing row.
        """
        db = self._session_factory()
        try:
            return db.query(ReportJob).filter(ReportJob.id == job_id).first()
        except SQLAlchemyError as e:
            logger.warning(f"[JobStore] Failed to read job {job_id}: {e}")
            return None
        finally:
            db.close()

    def update_job(self, job_id: str, update: JobUpdate) -> None:
        """
        Apply a sparse patch to a job.

        Raises:
            PersistenceError: if the write did not succeed
        """
        columns = update.to_columns()
        if not columns:
            return

        logger.debug(f"[JobStore] Updating job {job_id}: {columns}")
        columns["updated_at"] = datetime.utcnow()

        db = self._session_factory()
        try:
            matched = (
                db.query(ReportJob)
                .filter(ReportJob.id == job_id)
                .update(columns, synchronize_session=False)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[JobStore] Update job {job_id} failed: {e}")
            raise PersistenceError(f"Failed to update job: {e}") from e
        finally:
            db.close()

        if not matched:
            logger.warning(f"[JobStore] Update matched no rows for job {job_id}")

    def list_jobs(
        self,
        brand_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[ReportJob]:
        """List jobs newest first with optional filters."""
        db = self._session_factory()
        try:
            query = db.query(ReportJob)
            if brand_id:
                query = query.filter(ReportJob.brand_id == brand_id)
            if status:
                query = query.filter(ReportJob.status == status.value)
            return query.order_by(ReportJob.created_at.desc()).offset(offset).limit(limit).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list jobs: {e}") from e
        finally:
            db.close()

    def cleanup_old_jobs(self, max_age_hours: float = 24) -> int:
        """
        Delete every job created more than max_age_hours ago, whatever its status.

        Best-effort: errors are logged and 0 is returned.
        """
        db = None
        try:
            cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)
            db = self._session_factory()
            deleted = (
                db.query(ReportJob)
                .filter(ReportJob.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
        except Exception as e:
            if db is not None:
                db.rollback()
            logger.error(f"[JobStore] Failed to cleanup old jobs: {e}")
            return 0
        finally:
            if db is not None:
                db.close()

        if deleted:
            logger.info(f"[JobStore] Removed {deleted} jobs older than {max_age_hours}h")
        return deleted
