"""
API Dependencies
Shared components created at startup and stored on app.state.
"""

from fastapi import Request

from app.services.browser import BrowserManager
from app.services.job_store import JobStore
from app.workers.generator import ReportGenerator
from app.workers.queue import QueueManager


def get_job_store(request: Request) -> JobStore:
    """Get the job store."""
    return request.app.state.job_store


def get_report_generator(request: Request) -> ReportGenerator:
    """Get the shared report generator."""
    return request.app.state.generator


def get_browser(request: Request) -> BrowserManager:
    """Get the shared browser manager."""
    return request.app.state.browser


def get_queue_manager(request: Request) -> QueueManager:
    """Get the RQ queue manager."""
    return request.app.state.queue_manager
