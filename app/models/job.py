"""
Report Job Model
Database model for report generation jobs.
"""

from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, JSON

from app.core.database import Base


class ReportJob(Base):
    """Report generation job model."""

    __tablename__ = "report_jobs"

    id = Column(String, primary_key=True)  # report_<millis>_<suffix> format

    # Parameters
    brand_id = Column(String, nullable=False, index=True)
    campaign_ids = Column(JSON, nullable=True)
    location_ids = Column(JSON, nullable=True)
    from_date = Column(String, nullable=True)
    to_date = Column(String, nullable=True)
    home_page_details = Column(JSON, nullable=True)
    logo = Column(Text, nullable=True)
    currency = Column(String, nullable=True)
    time_zone = Column(String, nullable=True)
    level = Column(String, nullable=True)

    # Status: pending, Processing, Download, Failed
    status = Column(String, default="pending", nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    error = Column(Text, nullable=True)

    # Result
    download_url = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ReportJob {self.id} status={self.status} progress={self.progress}>"
