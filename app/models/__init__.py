# Database models package
from app.models.job import ReportJob

__all__ = [
    "ReportJob",
]
