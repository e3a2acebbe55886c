"""
Report Queue
Hands report jobs to RQ workers and reports queue depth.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from redis import Redis
from rq import Queue
from rq.job import Job

from app.core.config import settings
from app.core.redis import Queues, get_redis

logger = logging.getLogger(__name__)


def rq_job_id(job_id: str) -> str:
    """RQ id for a report job."""
    return f"gen_{job_id}"


class QueueManager:
    """
    Enqueues report generation on the reports queue.

    The generator retries internally, so RQ-level retries are not used.
    """

    def __init__(self, redis: Optional[Redis] = None):
        self._redis = redis
        self._queue: Optional[Queue] = None

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(
                name=Queues.REPORTS,
                connection=self._redis or get_redis(),
                default_timeout=settings.JOB_TIMEOUT_REPORT,
            )
        return self._queue

    def enqueue_report(
        self,
        job_id: str,
        base_url: str,
        selectors: Optional[List[str]] = None,
    ) -> Job:
        """
        Enqueue generation for an existing pending job.

        Raises:
            redis.exceptions.RedisError: if the queue is unreachable
        """
        from app.workers.tasks import run_report_generation_task

        # job_id is reserved by enqueue(), so task arguments go through kwargs=
        job = self.queue.enqueue(
            run_report_generation_task,
            kwargs={"job_id": job_id, "base_url": base_url, "selectors": selectors},
            job_id=rq_job_id(job_id),
            job_timeout=settings.JOB_TIMEOUT_REPORT,
            description=f"report {job_id}",
            meta={"queued_at": datetime.utcnow().isoformat()},
        )

        logger.info(f"[Queue] Enqueued report job {job_id} as {job.id}")
        return job

    def stats(self) -> Dict[str, int]:
        """Counts for the reports queue."""
        queue = self.queue
        return {
            "queued": queue.count,
            "started": queue.started_job_registry.count,
            "failed": queue.failed_job_registry.count,
        }


__all__ = [
    "QueueManager",
    "rq_job_id",
]
