"""
Report Renderer API
FastAPI Backend Entry Point
"""

import asyncio
import logging
import resource
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from app.core.config import settings
from app.core.database import init_db
from app.core.redis import get_redis_manager, redis_health_check
from app.core.exceptions import (
    global_exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
)
from app.api import diagnostics, reports
from app.services.browser import BrowserManager
from app.services.job_store import JobStore
from app.services.maintenance import run_cleanup_loop
from app.services.storage import PDF_CONTENT_TYPE, StorageService
from app.workers.generator import ReportGenerator
from app.workers.queue import QueueManager


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)

VERSION = "0.3.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Report Renderer API...")
    init_db()

    app.state.started_at = time.monotonic()
    app.state.job_store = JobStore()
    app.state.storage = StorageService()
    app.state.browser = BrowserManager()
    app.state.generator = ReportGenerator(app.state.job_store, app.state.storage, app.state.browser)
    app.state.queue_manager = QueueManager()

    cleanup_task = None
    if settings.CLEANUP_ENABLED:
        cleanup_task = asyncio.create_task(
            run_cleanup_loop(app.state.job_store, settings.CLEANUP_INTERVAL_MINUTES, settings.JOB_TTL_HOURS)
        )

    logger.info(
        f"Configuration: max_retries={settings.MAX_RETRIES} timeouts={settings.timeouts_summary()} "
        f"chart_batch_size={settings.CHART_BATCH_SIZE} storage={app.state.storage.backend}"
    )
    yield

    # Shutdown: refuse new work, let running jobs finish
    logger.info("Shutting down Report Renderer API...")
    generator: ReportGenerator = app.state.generator
    generator.begin_shutdown()
    if generator.is_processing:
        logger.info(f"Waiting for {generator.in_flight} in-flight job(s) to finish...")
        await generator.wait_idle(timeout=settings.SHUTDOWN_GRACE_SECONDS)

    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Cleanup task ended with error: {e}")

    await app.state.browser.close()
    get_redis_manager().close()


app = FastAPI(
    title="Report Renderer API",
    description="Renders dashboard reports to PDF with a headless browser",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Include routers
app.include_router(reports.router, tags=["Reports"])
app.include_router(diagnostics.router, tags=["Diagnostics"])


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Liveness and diagnostics: uptime, memory, processing state, config.
    """
    from sqlalchemy import text
    from app.core.database import SessionLocal

    generator: ReportGenerator = request.app.state.generator
    usage = resource.getrusage(resource.RUSAGE_SELF)

    status = {
        "status": "healthy",
        "version": VERSION,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 1),
        "memory": {
            # ru_maxrss is reported in kilobytes on Linux
            "max_rss_mb": round(usage.ru_maxrss / 1024, 1),
        },
        "processing": {
            "is_processing": generator.is_processing,
            "in_flight": generator.in_flight,
            "accepting": generator.accepting,
            "browser_running": request.app.state.browser.is_running,
        },
        "config": {
            "max_retries": settings.MAX_RETRIES,
            "timeouts": settings.timeouts_summary(),
            "storage": request.app.state.storage.backend,
        },
        "services": {},
    }

    # Check database connection
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        status["services"]["database"] = "ok"
    except Exception as e:
        status["services"]["database"] = f"error: {str(e)}"
        status["status"] = "degraded"

    # Redis only backs POST /reports, so it does not degrade overall status
    redis_status = redis_health_check()
    if redis_status.get("connected"):
        status["services"]["redis"] = "ok"
        status["queue"] = request.app.state.queue_manager.stats()
    else:
        status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"

    return status


@app.get("/files/{file_path:path}", tags=["Files"])
async def serve_file(file_path: str, request: Request):
    """
    Serve stored report PDFs.
    Public URLs point here when artifacts are kept on the local filesystem.
    """
    storage: StorageService = request.app.state.storage
    try:
        data = await storage.get_file(file_path)
    except Exception as e:
        logger.info(f"[Files] Not found: {file_path} ({e})")
        raise HTTPException(status_code=404, detail="File not found")

    return Response(
        content=data,
        media_type=PDF_CONTENT_TYPE if file_path.endswith(".pdf") else "application/octet-stream",
        headers={"Cache-Control": "public, max-age=3600"},
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": "Report Renderer API",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT)
