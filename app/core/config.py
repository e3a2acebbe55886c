"""
Application Configuration
Loads settings from environment variables.
"""

from typing import Dict, List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Report Renderer"
    DEBUG: bool = False
    PORT: int = 3001
    LOG_LEVEL: str = "INFO"

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./reports.db"

    # Redis (queued report jobs)
    REDIS_URL: str = "redis://localhost:6379"

    # Storage - S3 settings (optional)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # Google Cloud Storage
    USE_GCS: bool = False
    GCS_BUCKET_REPORTS: str = "brand-reports"
    GCP_PROJECT_ID: str = ""

    # Artifacts live at {STORAGE_PREFIX}/{brand_id}/report-{job_id}.pdf
    STORAGE_PREFIX: str = "brand-uploaded"
    # Base URL prepended to artifact paths when the backend has no public URL of its own
    PUBLIC_BASE_URL: str = "http://localhost:3001"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Browser
    CHROME_EXECUTABLE_PATH: str = ""
    PLAYWRIGHT_BROWSERS_PATH: str = "/opt/render/.cache/ms-playwright"
    HEADLESS: bool = True
    BROWSER_LAUNCH_TIMEOUT: float = 30.0
    VIEWPORT_WIDTH: int = 1200
    VIEWPORT_HEIGHT: int = 800
    USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
    )
    # Extra headers, e.g. {"ngrok-skip-browser-warning": "true"} to get past tunnel interstitials
    EXTRA_HTTP_HEADERS: Dict[str, str] = {}
    # Inline campaign/location/date/currency/logo data into the render URL
    INLINE_REPORT_PARAMS: bool = False

    # Report pipeline (seconds)
    MAX_RETRIES: int = 2
    RETRY_DELAY: float = 10.0
    NAVIGATION_TIMEOUT: float = 120.0
    FALLBACK_NAVIGATION_TIMEOUT: float = 60.0
    PAGE_LOAD_TIMEOUT: float = 60.0
    CHART_TIMEOUT: float = 60.0
    PDF_TIMEOUT: float = 180.0
    NAVIGATION_SETTLE: float = 3.0
    FALLBACK_NAVIGATION_SETTLE: float = 10.0
    PAGE_LOAD_INITIAL_WAIT: float = 2.0
    PAGE_LOAD_SETTLE: float = 1.0
    PDF_SETTLE: float = 3.0

    # Chart waiting
    CHART_BATCH_SIZE: int = 3
    CHART_BATCH_PAUSE: float = 1.0
    CHART_SUCCESS_THRESHOLD: float = 0.7

    # Artifact upload
    UPLOAD_MAX_RETRIES: int = 2
    UPLOAD_RETRY_DELAY: float = 2.0

    # Worker settings
    MAX_CONCURRENT_JOBS: int = 1
    SHUTDOWN_GRACE_SECONDS: float = 300.0
    JOB_TIMEOUT_REPORT: int = 900

    # Cleanup sweep
    JOB_TTL_HOURS: int = 24
    CLEANUP_INTERVAL_MINUTES: int = 60
    CLEANUP_ENABLED: bool = True

    @field_validator('S3_ACCESS_KEY', 'S3_SECRET_KEY', mode='before')
    @classmethod
    def strip_secrets(cls, v):
        """Strip whitespace and newlines from keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('CHART_SUCCESS_THRESHOLD')
    @classmethod
    def check_threshold(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError("CHART_SUCCESS_THRESHOLD must be between 0 and 1")
        return v

    @field_validator('MAX_RETRIES', 'CHART_BATCH_SIZE', 'MAX_CONCURRENT_JOBS')
    @classmethod
    def check_positive(cls, v):
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    def timeouts_summary(self) -> dict:
        """Timeouts reported by the health endpoint."""
        return {
            "navigation": self.NAVIGATION_TIMEOUT,
            "page_load": self.PAGE_LOAD_TIMEOUT,
            "chart_wait": self.CHART_TIMEOUT,
            "pdf_generation": self.PDF_TIMEOUT,
        }

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
