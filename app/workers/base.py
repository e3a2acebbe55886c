"""
Base Worker Classes
Error taxonomy for the report pipeline plus the retry and fallback helpers it
is built from.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Type, TypeVar
from functools import wraps

logger = logging.getLogger(__name__)

T = TypeVar('T')
V = TypeVar('V')


class ReportError(Exception):
    """Base exception for report pipeline errors."""

    def __init__(self, message: str, retryable: bool = True, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.details = details or {}


class AcquisitionError(ReportError):
    """A rendering session could not be started."""


class NavigationError(ReportError):
    """The report URL was unreachable or never settled."""


class PageLoadError(ReportError):
    """No recognizable content appeared on the page."""


class ChartLoadError(ReportError):
    """Too many expected chart elements never appeared."""

    def __init__(self, message: str, failed: Sequence[str], loaded: Sequence[str] = ()):
        super().__init__(message, details={"failed": list(failed), "loaded": list(loaded)})
        self.failed = list(failed)
        self.loaded = list(loaded)


class RenderError(ReportError):
    """PDF rasterization failed under every configuration."""


class UploadError(ReportError):
    """The artifact could not be persisted to object storage."""


class GenerationError(ReportError):
    """Report generation failed after every retry."""

    def __init__(self, message: str, attempts: int = 0, cause: Optional[BaseException] = None):
        super().__init__(message, retryable=False, details={"attempts": attempts})
        self.attempts = attempts
        self.cause = cause


def is_navigation_failure(error: BaseException) -> bool:
    """Navigation-class failures get a longer, attempt-scaled retry delay."""
    if isinstance(error, NavigationError):
        return True
    message = str(error)
    return "Navigation timeout" in message or "Timed out" in message


def with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    exponential_backoff: bool = True,
    retryable_exceptions: tuple = (TimeoutError, ConnectionError),
    final_exception: Optional[Type[ReportError]] = None,
):
    """
    Decorator to add retry logic to async calls.

    Args:
        max_retries: Retry attempts after the first call
        retry_delay: Base delay between retries (seconds)
        exponential_backoff: Whether to use exponential backoff
        retryable_exceptions: Tuple of exception types that should trigger retry
        final_exception: Raised (chained) instead of the last error once retries are exhausted
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = getattr(func, "__name__", repr(func))

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except retryable_exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        delay = retry_delay * (2 ** attempt if exponential_backoff else 1)
                        logger.warning(
                            f"[Retry {attempt + 1}/{max_retries}] {name} failed: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"[Failed] {name} exhausted all {max_retries} retries: {e}"
                        )

            # All retries exhausted
            if final_exception is not None:
                raise final_exception(
                    f"{name} failed after {max_retries + 1} attempts: {last_exception}"
                ) from last_exception
            raise last_exception

        return async_wrapper

    return decorator


async def run_with_fallbacks(
    variants: Sequence[V],
    action: Callable[[V, int], Awaitable[T]],
    error_type: Type[ReportError],
    label: str,
) -> T:
    """
    Try each configuration variant in order and return the first success.

    Args:
        variants: Ordered configurations, most preferred first
        action: Called as action(variant, index)
        error_type: Raised with every failure message when all variants fail
        label: Name used in logs and the final error
    """
    failures: List[str] = []

    for index, variant in enumerate(variants):
        try:
            result = await action(variant, index)
        except Exception as e:
            message = str(e) or type(e).__name__
            failures.append(message)
            if index < len(variants) - 1:
                logger.warning(f"[{label}] Strategy {index + 1}/{len(variants)} failed: {message}. Trying next...")
            else:
                logger.error(f"[{label}] Strategy {index + 1}/{len(variants)} failed: {message}")
            continue

        if index > 0:
            logger.info(f"[{label}] Fallback strategy {index + 1} succeeded")
        return result

    raise error_type(
        f"{label} failed: " + ". Fallback also failed: ".join(failures),
        details={"failures": failures},
    )


# Export all
__all__ = [
    "ReportError",
    "AcquisitionError",
    "NavigationError",
    "PageLoadError",
    "ChartLoadError",
    "RenderError",
    "UploadError",
    "GenerationError",
    "is_navigation_failure",
    "with_retry",
    "run_with_fallbacks",
]
