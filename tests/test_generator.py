import pytest
from pydantic import ValidationError

from app.schemas.job import JobUpdate
from app.schemas.report import GenerateReportRequest, ReportParameters
from app.services.storage import StorageService
from app.workers.base import ChartLoadError, GenerationError, NavigationError, RenderError
from app.workers.generator import (
    AttemptOutput,
    Progress,
    ProgressReporter,
    ReportGenerator,
    ShuttingDownError,
)
from conftest import FakeBrowser, FakePage


class RecordingStore:
    """Wraps a JobStore and records every update it applies."""

    def __init__(self, inner):
        self.inner = inner
        self.updates = []

    def update_job(self, job_id, update: JobUpdate):
        self.updates.append(update.to_columns())
        self.inner.update_job(job_id, update)

    def __getattr__(self, name):
        return getattr(self.inner, name)


@pytest.fixture
def store(job_store):
    return RecordingStore(job_store)


@pytest.fixture
def storage(fast_settings):
    return StorageService(fast_settings)


def new_request(store, **overrides) -> GenerateReportRequest:
    data = {
        "brandId": "brand-1",
        "level": "Location Level",
        "locationIds": [{"label": "North", "value": 11}, {"label": "South", "value": 12}],
        "fromDate": "2024-01-01",
        "toDate": "2024-01-31",
    }
    data.update(overrides)
    job_id = store.create_job(ReportParameters(**data))
    return GenerateReportRequest(jobId=job_id, baseURL="https://dash.test", **data)


def assert_write_invariants(updates):
    for columns in updates:
        status = columns.get("status")
        if status == "Download":
            assert columns["progress"] == 100
            assert columns["download_url"]
        if status == "Failed":
            assert columns["progress"] == 0
            assert columns["error"]


class ScriptedGenerator(ReportGenerator):
    """Replaces the browser pipeline with a scripted sequence of outcomes."""

    def __init__(self, *args, outcomes=(), **kwargs):
        super().__init__(*args, **kwargs)
        self.outcomes = list(outcomes)
        self.attempts = 0

    async def _run_attempt(self, request, progress):
        self.attempts += 1
        progress.advance(Progress.NAVIGATING)
        outcome = self.outcomes.pop(0) if self.outcomes else RuntimeError("always fails")
        if isinstance(outcome, BaseException):
            raise outcome
        progress.advance(Progress.UPLOADED)
        return outcome


@pytest.mark.anyio
async def test_always_failing_job_ends_failed_after_max_retries(store, storage, fast_settings):
    request = new_request(store)
    generator = ScriptedGenerator(
        store, storage, FakeBrowser(), fast_settings,
        outcomes=[RuntimeError("first"), RuntimeError("browser crashed on attempt 2")],
    )

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate_report(request)

    assert generator.attempts == fast_settings.MAX_RETRIES
    assert exc_info.value.attempts == 2
    assert str(exc_info.value) == "browser crashed on attempt 2"

    job = store.get_job(request.job_id)
    assert job.status == "Failed"
    assert job.progress == 0
    assert job.error == "browser crashed on attempt 2"
    assert job.download_url is None
    assert_write_invariants(store.updates)
    assert generator.in_flight == 0


@pytest.mark.anyio
async def test_success_after_retry_publishes_download(store, storage, fast_settings):
    request = new_request(store)
    output = AttemptOutput(artifact_path="brand-uploaded/brand-1/report-x.pdf", loaded_charts=["a"])
    generator = ScriptedGenerator(
        store, storage, FakeBrowser(), fast_settings,
        outcomes=[NavigationError("HTTP 502: Bad Gateway"), output],
    )

    result = await generator.generate_report(request)

    assert result.attempts == 2
    assert result.url == "http://reports.test/files/brand-uploaded/brand-1/report-x.pdf"
    job = store.get_job(request.job_id)
    assert job.status == "Download"
    assert job.progress == 100
    assert job.download_url == result.url
    assert job.error is None
    assert_write_invariants(store.updates)


@pytest.mark.anyio
async def test_progress_never_goes_backwards_across_retries(store, storage, fast_settings):
    request = new_request(store)
    output = AttemptOutput(artifact_path="p.pdf")
    generator = ScriptedGenerator(
        store, storage, FakeBrowser(), fast_settings,
        outcomes=[RuntimeError("flaky"), output],
    )

    await generator.generate_report(request)

    processing = [u["progress"] for u in store.updates if u.get("status") == "Processing"]
    assert processing == sorted(processing)
    assert len(processing) == len(set(processing))
    assert processing[0] == Progress.ACCEPTED


def test_navigation_failures_wait_longer_between_attempts(store, storage, fast_settings):
    settings = fast_settings.model_copy(update={"RETRY_DELAY": 5})
    generator = ReportGenerator(store, storage, FakeBrowser(), settings)

    assert generator._retry_delay(NavigationError("HTTP 502: Bad Gateway"), 1) == 10
    assert generator._retry_delay(TimeoutError("Navigation timeout of 120000 ms exceeded"), 2) == 15
    assert generator._retry_delay(RenderError("PDF generation failed"), 1) == 5


@pytest.mark.anyio
async def test_shutdown_refuses_new_runs(store, storage, fast_settings):
    generator = ScriptedGenerator(store, storage, FakeBrowser(), fast_settings)
    generator.begin_shutdown()

    with pytest.raises(ShuttingDownError):
        await generator.generate_report(new_request(store))

    assert generator.in_flight == 0
    assert await generator.wait_idle(timeout=1) is True


def test_progress_reporter_skips_lower_values(store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    reporter = ProgressReporter(store, job_id)

    reporter.advance(40)
    reporter.advance(20)
    reporter.advance(40)
    reporter.advance(70)

    assert [u["progress"] for u in store.updates] == [40, 70]
    assert store.get_job(job_id).progress == 70


@pytest.mark.anyio
async def test_full_pipeline_with_fake_browser(store, storage, fast_settings, tmp_path):
    page = FakePage(missing={"Device Split Chart 12"})
    browser = FakeBrowser(page)
    request = new_request(store)
    generator = ReportGenerator(store, storage, browser, fast_settings)

    result = await generator.generate_report(request)

    # 8 charts expected, 7 loaded: above the 70% threshold
    assert len(result.loaded_charts) == 7
    assert result.failed_charts == ["Device Split Chart 12"]
    assert page.goto_calls[0]["url"].startswith("https://dash.test/render-chart?jobId=")
    assert browser.sessions_opened == browser.sessions_closed == 1

    stored = tmp_path / "uploads" / "brand-uploaded" / "brand-1" / f"report-{request.job_id}.pdf"
    assert stored.read_bytes() == page.pdf_bytes

    progress = [u["progress"] for u in store.updates]
    assert progress == [10, 20, 40, 70, 85, 95, 100]
    assert store.get_job(request.job_id).status == "Download"


@pytest.mark.anyio
async def test_full_pipeline_fails_when_too_many_charts_missing(store, storage, fast_settings):
    page = FakePage(missing={"Chart 11", "Chart 12"})
    browser = FakeBrowser(page)
    request = new_request(store)
    generator = ReportGenerator(store, storage, browser, fast_settings)

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate_report(request)

    assert isinstance(exc_info.value.__cause__, ChartLoadError)
    assert browser.sessions_opened == browser.sessions_closed == fast_settings.MAX_RETRIES
    assert not page.pdf_calls
    job = store.get_job(request.job_id)
    assert job.status == "Failed"
    assert "Too many charts failed to load" in job.error


@pytest.mark.anyio
async def test_session_acquisition_failure_is_retried(store, storage, fast_settings):
    request = new_request(store)
    generator = ReportGenerator(store, storage, FakeBrowser(fail_acquire=True), fast_settings)

    with pytest.raises(GenerationError) as exc_info:
        await generator.generate_report(request)

    assert "browser crashed" in str(exc_info.value)
    assert store.get_job(request.job_id).status == "Failed"


def test_request_rejects_job_id_with_path_characters():
    with pytest.raises(ValidationError):
        GenerateReportRequest(jobId="../x", baseURL="https://dash.test", brandId="brand-1")


class UnnamedArtifactStorage(StorageService):
    def artifact_path(self, brand_id, job_id):
        raise ValueError(f"Invalid job id: {job_id!r}")


@pytest.mark.anyio
async def test_unusable_artifact_path_fails_before_opening_a_session(store, fast_settings):
    browser = FakeBrowser()
    request = new_request(store)
    generator = ReportGenerator(store, UnnamedArtifactStorage(fast_settings), browser, fast_settings)

    with pytest.raises(GenerationError):
        await generator.generate_report(request)

    assert browser.sessions_opened == 0
    assert not browser.page.goto_calls
    assert store.get_job(request.job_id).status == "Failed"
