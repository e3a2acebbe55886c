"""
Diagnostics API Routes
Standalone navigation probe, independent of the job pipeline.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_browser
from app.core.exceptions import error_response
from app.schemas.report import DiagnoseUrlRequest, DiagnoseUrlResponse
from app.services.browser import BrowserManager
from app.workers.base import AcquisitionError

logger = logging.getLogger(__name__)

router = APIRouter()

PROBE_TIMEOUT = 30.0


@router.post("/diagnose-url", response_model=DiagnoseUrlResponse, response_model_exclude_none=True)
async def diagnose_url(
    request: DiagnoseUrlRequest,
    browser: BrowserManager = Depends(get_browser),
):
    """Open a URL in a fresh browser session and report load time and title."""
    url = request.url.strip()
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="URL is required")

    logger.info(f"[API] Diagnosing URL: {url}")
    try:
        result = await browser.probe(url, timeout=PROBE_TIMEOUT)
    except AcquisitionError as e:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            e.message,
            success=False,
            timestamp=datetime.utcnow().isoformat(),
        )

    return DiagnoseUrlResponse(**result)
