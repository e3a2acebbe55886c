import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.api.deps import get_browser, get_queue_manager, get_report_generator
from app.main import app
from app.schemas.job import JobStatus, JobUpdate
from app.schemas.report import ReportParameters
from app.workers.base import GenerationError
from app.workers.generator import GenerationResult
from conftest import FakeBrowser


class StubGenerator:
    def __init__(self, result=None, error=None, accepting=True):
        self.result = result
        self.error = error
        self.accepting = accepting
        self.requests = []

    async def generate_report(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


class StubQueue:
    def __init__(self, error=None):
        self.error = error
        self.enqueued = []

    def enqueue_report(self, job_id, base_url, selectors=None):
        if self.error is not None:
            raise self.error
        self.enqueued.append((job_id, base_url, selectors))


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def store(client):
    return client.app.state.job_store


def payload(job_id, **overrides):
    data = {
        "jobId": job_id,
        "baseURL": "https://dash.test",
        "brandId": "brand-1",
        "level": "Location Level",
        "locationIds": [{"label": "North", "value": 11}],
        "fromDate": "2024-01-01",
        "toDate": "2024-01-31",
    }
    data.update(overrides)
    return data


def test_generate_report_missing_fields_is_400(client):
    response = client.post("/generate-report", json={"jobId": "report_1_abc"})

    assert response.status_code == 400
    assert "brandId" in response.json()["error"]
    assert "baseURL" in response.json()["error"]


def test_generate_report_rejects_unsafe_brand_id(client):
    response = client.post("/generate-report", json=payload("report_1_abc", brandId="../other"))
    assert response.status_code == 400


def test_generate_report_rejects_job_id_unfit_for_a_file_name(client):
    response = client.post("/generate-report", json=payload("report.1"))

    assert response.status_code == 400
    assert "jobId" in response.json()["error"]


def test_generate_report_unknown_job_is_404(client):
    response = client.post("/generate-report", json=payload("report_1_missing"))

    assert response.status_code == 404
    assert response.json()["error"] == "Job not found"


def test_generate_report_finished_job_is_409(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    store.update_job(job_id, JobUpdate(status=JobStatus.DOWNLOAD, progress=100, download_url="http://x/r.pdf"))

    response = client.post("/generate-report", json=payload(job_id))

    assert response.status_code == 409


def test_generate_report_success(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    generator = StubGenerator(GenerationResult(
        url="http://reports.test/files/brand-uploaded/brand-1/report.pdf",
        loaded_charts=["Best Time Chart 11"],
        failed_charts=["Device Split Chart 11"],
    ))
    app.dependency_overrides[get_report_generator] = lambda: generator

    response = client.post("/generate-report", json=payload(job_id))

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["url"].endswith("report.pdf")
    assert body["loadedCharts"] == ["Best Time Chart 11"]
    assert body["failedCharts"] == ["Device Split Chart 11"]
    assert generator.requests[0].base_url == "https://dash.test"


def test_generate_report_failure_is_500_with_message(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    app.dependency_overrides[get_report_generator] = lambda: StubGenerator(
        error=GenerationError("Navigation failed: timeout", attempts=2)
    )

    response = client.post("/generate-report", json=payload(job_id))

    assert response.status_code == 500
    assert response.json()["error"] == "Navigation failed: timeout"
    assert "timestamp" in response.json()


def test_generate_report_while_shutting_down_is_503(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    app.dependency_overrides[get_report_generator] = lambda: StubGenerator(accepting=False)

    response = client.post("/generate-report", json=payload(job_id))

    assert response.status_code == 503


def test_create_report_queues_job(client, store):
    queue = StubQueue()
    app.dependency_overrides[get_queue_manager] = lambda: queue

    data = payload("ignored")
    del data["jobId"]
    response = client.post("/reports", json=data)

    assert response.status_code == 202
    job_id = response.json()["jobId"]
    assert response.json()["status"] == "pending"
    assert queue.enqueued == [(job_id, "https://dash.test", None)]
    assert store.get_job(job_id).status == "pending"


def test_create_report_marks_job_failed_when_queue_is_down(client, store):
    app.dependency_overrides[get_queue_manager] = lambda: StubQueue(error=RedisConnectionError("refused"))

    data = payload("ignored")
    del data["jobId"]
    response = client.post("/reports", json=data)

    assert response.status_code == 503
    jobs = store.list_jobs(status=JobStatus.FAILED)
    assert any("refused" in (job.error or "") for job in jobs)


def test_get_report_uses_camel_case(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-1"))
    store.update_job(job_id, JobUpdate(status=JobStatus.DOWNLOAD, progress=100, download_url="http://x/r.pdf"))

    response = client.get(f"/reports/{job_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["brandId"] == "brand-1"
    assert body["downloadUrl"] == "http://x/r.pdf"
    assert body["status"] == "Download"


def test_get_report_unknown_is_404(client):
    assert client.get("/reports/report_1_missing").status_code == 404


def test_list_reports_filters_by_brand(client, store):
    job_id = store.create_job(ReportParameters(brandId="brand-list"))

    response = client.get("/reports", params={"brandId": "brand-list"})

    assert response.status_code == 200
    assert [job["id"] for job in response.json()] == [job_id]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["processing"]["is_processing"] is False
    assert body["config"]["max_retries"] >= 1
    assert body["services"]["database"] == "ok"
    assert "redis" in body["services"]


def test_diagnose_url_requires_url(client):
    response = client.post("/diagnose-url", json={"url": "  "})

    assert response.status_code == 400
    assert response.json()["error"] == "URL is required"


def test_diagnose_url_reports_load(client):
    app.dependency_overrides[get_browser] = lambda: FakeBrowser()

    response = client.post("/diagnose-url", json={"url": "https://dash.test"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["loadTime"] == 12
    assert body["finalUrl"] == "https://dash.test"
    assert "error" not in body


def test_diagnose_url_browser_failure_is_500(client):
    app.dependency_overrides[get_browser] = lambda: FakeBrowser(fail_acquire=True)

    response = client.post("/diagnose-url", json={"url": "https://dash.test"})

    assert response.status_code == 500
    assert response.json()["success"] is False


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/no-such-route")

    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"
