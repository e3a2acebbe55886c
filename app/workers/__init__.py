# Workers package - report pipeline orchestration and queued jobs with RQ
#
# Only the error taxonomy is re-exported here; services import it, so the
# generator, queue and task modules are imported from their own modules.

from app.workers.base import (
    ReportError,
    AcquisitionError,
    NavigationError,
    PageLoadError,
    ChartLoadError,
    RenderError,
    UploadError,
    GenerationError,
    with_retry,
    run_with_fallbacks,
)

__all__ = [
    "ReportError",
    "AcquisitionError",
    "NavigationError",
    "PageLoadError",
    "ChartLoadError",
    "RenderError",
    "UploadError",
    "GenerationError",
    "with_retry",
    "run_with_fallbacks",
]
