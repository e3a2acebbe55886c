# Services package - persistence, storage and browser integrations
from app.services.job_store import JobStore, PersistenceError
from app.services.storage import StorageService
from app.services.browser import BrowserManager

__all__ = [
    "JobStore",
    "PersistenceError",
    "StorageService",
    "BrowserManager",
]
