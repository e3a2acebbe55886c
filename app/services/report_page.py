"""
Report Page
Navigation, readiness checks and PDF rendering for the report page.
Each step that has more than one way of succeeding is expressed as an ordered
list of variants consumed by run_with_fallbacks.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from app.core.config import Settings
from app.schemas.report import GenerateReportRequest
from app.services.charts import scope_value
from app.workers.base import NavigationError, PageLoadError, RenderError, run_with_fallbacks

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)


# Tried in order; "body" is the last resort
REPORT_CONTAINER_SELECTORS = [
    "#report-home-page",
    ".report-container",
    '[data-testid="report"]',
    ".main-content",
    "body",
]

RENDER_PATH = "/render-chart"


@dataclass(frozen=True)
class NavigationStrategy:
    wait_until: str
    timeout: float
    settle: float


@dataclass(frozen=True)
class PdfVariant:
    name: str
    options: Dict[str, Any] = field(default_factory=dict)


# Decreasing quality; the first that renders wins
PDF_VARIANTS = [
    PdfVariant("full", {
        "format": "A4",
        "print_background": True,
        "margin": {"top": "0", "bottom": "0", "left": "0", "right": "0"},
        "prefer_css_page_size": True,
        "display_header_footer": False,
    }),
    PdfVariant("reduced-margins", {
        "format": "A4",
        "print_background": True,
        "margin": {"top": "10mm", "bottom": "10mm", "left": "10mm", "right": "10mm"},
    }),
    PdfVariant("minimal", {
        "format": "A4",
        "print_background": False,
    }),
]


def navigation_strategies(settings: Settings) -> List[NavigationStrategy]:
    """Primary content-loaded navigation, then a looser commit-only fallback."""
    return [
        NavigationStrategy("domcontentloaded", settings.NAVIGATION_TIMEOUT, settings.NAVIGATION_SETTLE),
        NavigationStrategy("commit", settings.FALLBACK_NAVIGATION_TIMEOUT, settings.FALLBACK_NAVIGATION_SETTLE),
    ]


def _scope_values(entries: Sequence[Any]) -> List[str]:
    return [v for v in (scope_value(e) for e in entries) if v is not None]


def build_report_url(request: GenerateReportRequest, inline_params: bool = False) -> str:
    """
    URL of the page that renders the report.

    The page looks the job up by id; with inline_params the report
    parameters are also carried in the query string.
    """
    query: Dict[str, str] = {"jobId": request.job_id, "isReport": "true"}

    if inline_params:
        query["brandId"] = request.brand_id
        optional = {
            "level": request.level,
            "fromDate": request.from_date,
            "toDate": request.to_date,
            "currency": request.currency,
            "timeZone": request.time_zone,
            "logo": request.logo,
        }
        query.update({k: v for k, v in optional.items() if v})
        if request.campaign_ids:
            query["campaignIds"] = ",".join(_scope_values(request.campaign_ids))
        if request.location_ids:
            query["locationIds"] = ",".join(_scope_values(request.location_ids))
        if request.home_page_details is not None:
            query["homePageDetails"] = json.dumps(request.home_page_details, separators=(",", ":"))

    return f"{request.base_url}{RENDER_PATH}?{urlencode(query)}"


async def navigate(page: "Page", url: str, strategies: Sequence[NavigationStrategy]):
    """
    Open url with the first strategy that works.

    Raises:
        NavigationError: if every strategy fails
    """
    logger.info(f"[Page] Opening URL ({len(url)} chars): {url}")

    async def attempt(strategy: NavigationStrategy, index: int):
        logger.info(f"[Page] Navigating with wait_until={strategy.wait_until}")
        response = await page.goto(url, wait_until=strategy.wait_until, timeout=strategy.timeout * 1000)
        if response is not None:
            logger.info(f"[Page] Navigation response status: {response.status}")
            if not response.ok:
                raise NavigationError(f"HTTP {response.status}: {response.status_text}")
        if strategy.settle > 0:
            await asyncio.sleep(strategy.settle)
        return response

    return await run_with_fallbacks(strategies, attempt, NavigationError, "Navigation")


async def wait_for_page_load(
    page: "Page",
    timeout: float = 60.0,
    initial_wait: float = 2.0,
    settle: float = 1.0,
    selectors: Sequence[str] = REPORT_CONTAINER_SELECTORS,
) -> str:
    """
    Wait for the report container to exist.

    Each fallback selector gets an equal slice of the budget. When none
    appears the page is accepted if the body has any markup at all.

    Returns:
        The selector that matched, or "content" for the last-resort check

    Raises:
        PageLoadError: if the page has no content
    """
    if initial_wait > 0:
        await asyncio.sleep(initial_wait)

    slice_ms = timeout * 1000 / max(len(selectors), 1)
    for selector in selectors:
        try:
            await page.wait_for_selector(selector, state="attached", timeout=slice_ms)
        except Exception as e:
            logger.warning(f"[Page] Selector {selector} not found, trying next... ({e})")
            continue

        logger.info(f"[Page] Found page element: {selector}")
        if settle > 0:
            await asyncio.sleep(settle)
        return selector

    try:
        has_content = await page.evaluate(
            "() => !!document.body && document.body.innerHTML.trim().length > 0"
        )
    except Exception as e:
        logger.warning(f"[Page] Could not evaluate page content: {e}")
        has_content = False

    if has_content:
        logger.info("[Page] Page has content, proceeding...")
        return "content"

    raise PageLoadError("Page failed to load - no valid content found")


async def render_pdf(
    page: "Page",
    timeout: float = 180.0,
    variants: Sequence[PdfVariant] = PDF_VARIANTS,
) -> bytes:
    """
    Print the current page to PDF.

    Raises:
        RenderError: if every variant fails or times out
    """
    async def attempt(variant: PdfVariant, index: int) -> bytes:
        logger.info(f"[Page] Generating PDF ({variant.name})...")
        try:
            pdf = await asyncio.wait_for(page.pdf(**variant.options), timeout=timeout)
        except asyncio.TimeoutError:
            raise RenderError(f"PDF generation timed out after {timeout:g}s ({variant.name})")
        if not pdf:
            raise RenderError(f"PDF generation returned no data ({variant.name})")
        logger.info(f"[Page] PDF generated: {len(pdf)} bytes")
        return pdf

    return await run_with_fallbacks(variants, attempt, RenderError, "PDF generation")
