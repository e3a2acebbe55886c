"""
Exception Handlers
Every error response uses the {"error": ...} envelope the dashboard expects.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _describe_validation_errors(errors: List[Dict[str, Any]]) -> str:
    """'body.brandId: Field required; body.baseURL: ...' without echoing input values."""
    parts = []
    for error in errors:
        location = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts) or "Invalid request"


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed fields are a 400, not FastAPI's default 422."""
    message = _describe_validation_errors(exc.errors())
    logger.warning(f"[API] Request validation failed path={request.url.path} errors={message}")
    return error_response(status.HTTP_400_BAD_REQUEST, message)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[API] HTTPException path={request.url.path} status={exc.status_code} detail={exc.detail}")
    return error_response(exc.status_code, str(exc.detail), timestamp=datetime.utcnow().isoformat())


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled errors."""
    logger.error(f"[API] Unhandled error path={request.url.path}: {exc}", exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal Server Error",
        timestamp=datetime.utcnow().isoformat(),
    )
