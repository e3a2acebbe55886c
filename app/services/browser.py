"""
Browser Service
Owns the shared headless Chromium and hands out disposable sessions
(one browser context + page) for report rendering.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, AsyncIterator, Dict, Optional

from playwright.async_api import async_playwright

from app.core.config import Settings, settings as default_settings
from app.workers.base import AcquisitionError

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)


# Flags that keep Chromium stable in small containers
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--no-first-run",
    "--disable-default-apps",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-field-trial-config",
    "--disable-back-forward-cache",
    "--disable-ipc-flooding-protection",
    "--force-color-profile=srgb",
    "--metrics-recording-only",
    "--no-default-browser-check",
    "--no-crash-upload",
    "--disable-breakpad",
]

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Render endpoint responses worth logging
RENDER_PATH_MARKER = "render-chart"


def find_chrome(browsers_path: str) -> Optional[str]:
    """
    Look for a Chromium/Chrome executable in a Playwright browsers cache.

    Layout: <cache>/chromium-<rev>/chrome-linux/chrome (older caches also
    use chrome-linux64 or a bare chrome binary).
    """
    cache_dir = Path(browsers_path)
    if not cache_dir.is_dir():
        logger.debug(f"[Browser] Cache directory does not exist: {cache_dir}")
        return None

    for version_dir in sorted(cache_dir.iterdir(), reverse=True):
        if not version_dir.is_dir() or not version_dir.name.startswith(("chromium", "chrome")):
            continue
        for candidate in (
            version_dir / "chrome-linux64" / "chrome",
            version_dir / "chrome-linux" / "chrome",
            version_dir / "chrome",
        ):
            if candidate.is_file():
                logger.info(f"[Browser] Found Chrome at: {candidate}")
                return str(candidate)

    return None


def resolve_executable(settings: Settings) -> Optional[str]:
    """Explicit executable path first, then the browsers cache, else Playwright's bundled build."""
    if settings.CHROME_EXECUTABLE_PATH:
        if Path(settings.CHROME_EXECUTABLE_PATH).is_file():
            return settings.CHROME_EXECUTABLE_PATH
        logger.warning(f"[Browser] CHROME_EXECUTABLE_PATH not found: {settings.CHROME_EXECUTABLE_PATH}")
    return find_chrome(settings.PLAYWRIGHT_BROWSERS_PATH)


class BrowserManager:
    """
    Lazily launches one Chromium process and creates an isolated context per session.

    Sessions are never shared: every call to session() gets its own context,
    closed when the block exits.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._pw: Optional["Playwright"] = None
        self._browser: Optional["Browser"] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def _ensure_browser(self) -> "Browser":
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._browser is not None:
                logger.warning("[Browser] Browser disconnected, relaunching...")
                await self._shutdown_locked()

            executable = resolve_executable(self.settings)
            logger.info(f"[Browser] Launching Chromium (executable: {executable or 'bundled'})")

            self._pw = await async_playwright().start()
            try:
                self._browser = await self._pw.chromium.launch(
                    headless=self.settings.HEADLESS,
                    executable_path=executable,
                    args=LAUNCH_ARGS,
                    timeout=self.settings.BROWSER_LAUNCH_TIMEOUT * 1000,
                )
            except Exception:
                await self._pw.stop()
                self._pw = None
                raise
            return self._browser

    async def _new_context(self, browser: "Browser") -> "BrowserContext":
        headers: Dict[str, str] = {"Accept": DEFAULT_ACCEPT}
        headers.update(self.settings.EXTRA_HTTP_HEADERS)
        return await browser.new_context(
            viewport={"width": self.settings.VIEWPORT_WIDTH, "height": self.settings.VIEWPORT_HEIGHT},
            user_agent=self.settings.USER_AGENT,
            extra_http_headers=headers,
            java_script_enabled=True,
        )

    def _attach_logging(self, page: "Page"):
        def on_response(response):
            if RENDER_PATH_MARKER in response.url:
                logger.info(f"[Browser] Response: {response.status} {response.url}")

        def on_request_failed(request):
            logger.info(f"[Browser] Request failed: {request.url} - {request.failure}")

        page.on("response", on_response)
        page.on("requestfailed", on_request_failed)

    @asynccontextmanager
    async def session(self) -> AsyncIterator["Page"]:
        """
        Acquire a configured page in a fresh browser context.

        Raises:
            AcquisitionError: if the browser, context or page cannot be created
        """
        context = None
        try:
            browser = await self._ensure_browser()
            context = await self._new_context(browser)
            page = await context.new_page()
        except Exception as e:
            if context is not None:
                await self._close_context(context)
            raise AcquisitionError(f"Could not start rendering session: {e}") from e

        page.set_default_timeout(self.settings.CHART_TIMEOUT * 1000)
        page.set_default_navigation_timeout(self.settings.NAVIGATION_TIMEOUT * 1000)
        self._attach_logging(page)

        try:
            yield page
        finally:
            await self._close_context(context)

    async def _close_context(self, context: "BrowserContext"):
        # Never let a release failure replace the error that got us here
        try:
            await context.close()
        except Exception as e:
            logger.warning(f"[Browser] Error closing browser context: {e}")

    async def probe(self, url: str, timeout: float = 30.0) -> dict:
        """
        Navigate a fresh session to url and report how it went.

        Used by the diagnose endpoint; independent of the job pipeline.
        """
        started = time.monotonic()
        async with self.session() as page:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
                return {
                    "success": True,
                    "load_time": int((time.monotonic() - started) * 1000),
                    "title": await page.title(),
                    "final_url": page.url,
                    "timestamp": datetime.utcnow(),
                }
            except Exception as e:
                logger.warning(f"[Browser] Probe of {url} failed: {e}")
                return {
                    "success": False,
                    "error": str(e),
                    "load_time": int((time.monotonic() - started) * 1000),
                    "timestamp": datetime.utcnow(),
                }

    async def _shutdown_locked(self):
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"[Browser] Error closing browser: {e}")
        self._browser = None
        if self._pw is not None:
            try:
                await self._pw.stop()
            except Exception as e:
                logger.warning(f"[Browser] Error stopping Playwright: {e}")
        self._pw = None

    async def close(self):
        """Close the browser and stop Playwright."""
        async with self._lock:
            await self._shutdown_locked()
        logger.info("[Browser] Browser closed")
