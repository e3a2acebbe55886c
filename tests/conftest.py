"""Test configuration: isolated database, local storage and browser fakes."""

import os
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

# Settings are read once at import time, so the environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="report-renderer-tests-")
os.environ["USE_LOCAL_STORAGE"] = "true"
os.environ["USE_GCS"] = "false"
os.environ["CLEANUP_ENABLED"] = "false"

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.core.database import build_engine, init_db  # noqa: E402
from app.services.job_store import JobStore  # noqa: E402
from app.workers.base import AcquisitionError  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def job_store():
    """JobStore over a private in-memory database."""
    engine = build_engine("sqlite://")
    init_db(bind=engine)
    store = JobStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    yield store
    engine.dispose()


@pytest.fixture
def fast_settings(tmp_path):
    """Settings with every sleep removed."""
    return Settings(
        MAX_RETRIES=2,
        RETRY_DELAY=0,
        NAVIGATION_SETTLE=0,
        FALLBACK_NAVIGATION_SETTLE=0,
        PAGE_LOAD_INITIAL_WAIT=0,
        PAGE_LOAD_SETTLE=0,
        PDF_SETTLE=0,
        CHART_BATCH_PAUSE=0,
        UPLOAD_RETRY_DELAY=0,
        LOCAL_STORAGE_PATH=str(tmp_path / "uploads"),
        USE_LOCAL_STORAGE=True,
        USE_GCS=False,
        PUBLIC_BASE_URL="http://reports.test",
    )


class FakeResponse:
    def __init__(self, status: int = 200):
        self.status = status
        self.ok = 200 <= status < 400
        self.status_text = "OK" if self.ok else "Error"


class FakePage:
    """
    Stands in for a Playwright page.

    missing: element ids (or container selectors) that never appear
    goto_errors: exceptions raised by successive goto() calls before one succeeds
    pdf_errors: exceptions raised by successive pdf() calls before one succeeds
    """

    def __init__(
        self,
        missing: Optional[set] = None,
        goto_errors: Optional[List[BaseException]] = None,
        pdf_errors: Optional[List[BaseException]] = None,
        status: int = 200,
        has_content: bool = True,
        pdf_bytes: bytes = b"%PDF-1.4 fake",
    ):
        self.missing = missing or set()
        self.goto_errors = list(goto_errors or [])
        self.pdf_errors = list(pdf_errors or [])
        self.status = status
        self.has_content = has_content
        self.pdf_bytes = pdf_bytes
        self.url = "about:blank"
        self.goto_calls: List[Dict[str, Any]] = []
        self.selector_calls: List[str] = []
        self.pdf_calls: List[Dict[str, Any]] = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_errors:
            raise self.goto_errors.pop(0)
        self.url = url
        return FakeResponse(self.status)

    async def wait_for_selector(self, selector, state=None, timeout=None):
        self.selector_calls.append(selector)
        if any(item in selector for item in self.missing):
            raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        return object()

    async def evaluate(self, expression):
        return self.has_content

    async def pdf(self, **options):
        self.pdf_calls.append(options)
        if self.pdf_errors:
            raise self.pdf_errors.pop(0)
        return self.pdf_bytes

    async def title(self):
        return "Report"

    def on(self, event, handler):
        pass

    def set_default_timeout(self, timeout):
        pass

    def set_default_navigation_timeout(self, timeout):
        pass


class FakeBrowser:
    """BrowserManager double handing out the same FakePage to every session."""

    def __init__(self, page: Optional[FakePage] = None, fail_acquire: bool = False):
        self.page = page or FakePage()
        self.fail_acquire = fail_acquire
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.is_running = True

    @asynccontextmanager
    async def session(self):
        if self.fail_acquire:
            raise AcquisitionError("Could not start rendering session: browser crashed")
        self.sessions_opened += 1
        try:
            yield self.page
        finally:
            self.sessions_closed += 1

    async def probe(self, url, timeout=30.0):
        if self.fail_acquire:
            raise AcquisitionError("Could not start rendering session: browser crashed")
        return {
            "success": True,
            "load_time": 12,
            "title": "Report",
            "final_url": url,
            "timestamp": datetime.utcnow(),
        }

    async def close(self):
        self.is_running = False
