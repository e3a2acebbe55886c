"""
Report Generator
Drives one report job through the browser pipeline:
acquire session -> navigate -> page ready -> charts -> PDF -> upload -> finalize.

The whole pipeline is retried from scratch on failure; nothing from a failed
attempt is reused.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from app.core.config import Settings, settings as default_settings
from app.schemas.job import JobStatus, JobUpdate
from app.schemas.report import GenerateReportRequest
from app.services.browser import BrowserManager
from app.services.charts import chart_css, derive_chart_selectors, wait_for_charts
from app.services.job_store import JobStore, PersistenceError
from app.services.report_page import (
    build_report_url,
    navigate,
    navigation_strategies,
    render_pdf,
    wait_for_page_load,
)
from app.services.storage import PDF_CONTENT_TYPE, StorageService
from app.workers.base import (
    GenerationError,
    ReportError,
    UploadError,
    is_navigation_failure,
    with_retry,
)

logger = logging.getLogger(__name__)


class Progress:
    """Milestone percentages reported while a job runs."""
    ACCEPTED = 10
    NAVIGATING = 20
    PAGE_READY = 40
    CHARTS_LOADED = 70
    PDF_RENDERED = 85
    UPLOADED = 95
    COMPLETE = 100


class ShuttingDownError(ReportError):
    """The generator no longer accepts work."""

    def __init__(self):
        super().__init__("Server is shutting down", retryable=False)


@dataclass
class AttemptOutput:
    """What a successful pipeline attempt produced."""
    artifact_path: str
    loaded_charts: List[str] = field(default_factory=list)
    failed_charts: List[str] = field(default_factory=list)


@dataclass
class GenerationResult:
    url: str
    loaded_charts: List[str] = field(default_factory=list)
    failed_charts: List[str] = field(default_factory=list)
    attempts: int = 1


class ProgressReporter:
    """
    Writes Processing milestones for one run.

    Never writes a value lower than one it already wrote, so a retry does not
    rewind the visible progress. Missed ticks are logged, not raised.
    """

    def __init__(self, job_store: JobStore, job_id: str):
        self.job_store = job_store
        self.job_id = job_id
        self.highest = 0

    def advance(self, progress: int):
        if progress <= self.highest:
            return
        try:
            self.job_store.update_job(
                self.job_id,
                JobUpdate(status=JobStatus.PROCESSING, progress=progress),
            )
        except PersistenceError as e:
            logger.warning(f"[Report] Progress update to {progress}% failed for {self.job_id}: {e}")
            return
        self.highest = progress


class ReportGenerator:
    """
    Orchestrates report generation for any number of jobs.

    One instance is shared by the HTTP handlers; it owns the in-flight
    counter used for health reporting and graceful shutdown.
    """

    def __init__(
        self,
        job_store: JobStore,
        storage: StorageService,
        browser: BrowserManager,
        settings: Optional[Settings] = None,
    ):
        self.job_store = job_store
        self.storage = storage
        self.browser = browser
        self.settings = settings or default_settings

        self._in_flight = 0
        self._accepting = True
        self._idle = asyncio.Event()
        self._idle.set()
        self._slots = asyncio.Semaphore(self.settings.MAX_CONCURRENT_JOBS)

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def is_processing(self) -> bool:
        return self._in_flight > 0

    @property
    def accepting(self) -> bool:
        return self._accepting

    def begin_shutdown(self):
        """Stop accepting new work; runs already started carry on."""
        if self._accepting:
            logger.info(f"[Report] Shutdown requested, {self._in_flight} job(s) in flight")
        self._accepting = False

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight runs to finish. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Report] {self._in_flight} job(s) still running after {timeout}s")
            return False
        return True

    @asynccontextmanager
    async def _track(self):
        if not self._accepting:
            raise ShuttingDownError()
        self._in_flight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def generate_report(self, request: GenerateReportRequest) -> GenerationResult:
        """
        Generate, upload and publish the PDF for a job.

        Raises:
            ShuttingDownError: if shutdown has begun
            GenerationError: once every attempt has failed (the job is marked Failed)
            PersistenceError: if the final status write fails
        """
        async with self._track():
            async with self._slots:
                return await self._run_with_retries(request)

    def _retry_delay(self, error: BaseException, attempt: int) -> float:
        if is_navigation_failure(error):
            return self.settings.RETRY_DELAY * (attempt + 1)
        return self.settings.RETRY_DELAY

    async def _run_with_retries(self, request: GenerateReportRequest) -> GenerationResult:
        job_id = request.job_id
        max_retries = self.settings.MAX_RETRIES
        progress = ProgressReporter(self.job_store, job_id)
        progress.advance(Progress.ACCEPTED)

        started = time.monotonic()
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_retries + 1):
            logger.info(f"[Report] Attempt {attempt}/{max_retries} for job: {job_id}")
            try:
                output = await self._run_attempt(request, progress)
            except Exception as e:
                last_error = e
                logger.error(f"[Report] Attempt {attempt} failed for {job_id}: {e}")
                if attempt < max_retries:
                    delay = self._retry_delay(e, attempt)
                    logger.info(f"[Report] Retrying in {delay:g}s... (attempt {attempt + 1}/{max_retries})")
                    await asyncio.sleep(delay)
                continue

            url = self.storage.get_public_url(output.artifact_path)
            self.job_store.update_job(job_id, JobUpdate(
                status=JobStatus.DOWNLOAD,
                progress=Progress.COMPLETE,
                download_url=url,
                error=None,
            ))
            logger.info(
                f"[Report] Completed job {job_id} in {time.monotonic() - started:.1f}s "
                f"({len(output.loaded_charts)} charts, {len(output.failed_charts)} missing)"
            )
            return GenerationResult(
                url=url,
                loaded_charts=output.loaded_charts,
                failed_charts=output.failed_charts,
                attempts=attempt,
            )

        message = str(last_error) or type(last_error).__name__
        self.job_store.update_job(job_id, JobUpdate(
            status=JobStatus.FAILED,
            progress=0,
            error=message,
            download_url=None,
        ))
        logger.error(f"[Report] Job {job_id} failed after {max_retries} attempts: {message}")
        raise GenerationError(message, attempts=max_retries, cause=last_error) from last_error

    async def _run_attempt(self, request: GenerateReportRequest, progress: ProgressReporter) -> AttemptOutput:
        """One full pass of the pipeline; the session is released before upload."""
        s = self.settings
        # Fails fast on ids that cannot name an artifact, before any browser work
        path = self.storage.artifact_path(request.brand_id, request.job_id)

        async with self.browser.session() as page:
            url = build_report_url(request, inline_params=s.INLINE_REPORT_PARAMS)
            progress.advance(Progress.NAVIGATING)
            await navigate(page, url, navigation_strategies(s))

            await wait_for_page_load(
                page,
                timeout=s.PAGE_LOAD_TIMEOUT,
                initial_wait=s.PAGE_LOAD_INITIAL_WAIT,
                settle=s.PAGE_LOAD_SETTLE,
            )
            progress.advance(Progress.PAGE_READY)

            selectors = derive_chart_selectors(
                request.level,
                request.campaign_ids,
                request.location_ids,
                chart_names=request.selectors,
            )
            logger.info(f"[Report] Processing {len(selectors)} charts")

            async def wait_for_chart(element_id: str):
                return await page.wait_for_selector(
                    chart_css(element_id), state="attached", timeout=s.CHART_TIMEOUT * 1000
                )

            charts = await wait_for_charts(
                wait_for_chart,
                selectors,
                batch_size=s.CHART_BATCH_SIZE,
                batch_pause=s.CHART_BATCH_PAUSE,
                threshold=s.CHART_SUCCESS_THRESHOLD,
            )
            progress.advance(Progress.CHARTS_LOADED)

            # Selectors only prove presence; give the last paint a moment
            if s.PDF_SETTLE > 0:
                await asyncio.sleep(s.PDF_SETTLE)
            pdf = await render_pdf(page, timeout=s.PDF_TIMEOUT)
            progress.advance(Progress.PDF_RENDERED)

        await self._upload(pdf, path)
        progress.advance(Progress.UPLOADED)

        return AttemptOutput(
            artifact_path=path,
            loaded_charts=charts.loaded,
            failed_charts=charts.failed,
        )

    async def _upload(self, pdf: bytes, path: str) -> str:
        upload = with_retry(
            max_retries=self.settings.UPLOAD_MAX_RETRIES,
            retry_delay=self.settings.UPLOAD_RETRY_DELAY,
            exponential_backoff=False,
            retryable_exceptions=(Exception,),
            final_exception=UploadError,
        )(self.storage.upload_bytes)
        logger.info(f"[Report] Uploading PDF to storage: {path}")
        return await upload(pdf, path, PDF_CONTENT_TYPE)
