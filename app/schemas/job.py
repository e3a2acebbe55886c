"""
Job Schemas
Pydantic models for report job records and partial updates.

The external contract is camelCase (``downloadUrl``); the table columns are
snake_case (``download_url``). The alias generator below is the only place the
two namings meet.
"""

from datetime import datetime
from typing import Optional, List, Any
from enum import Enum
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Job status enum. Values are persisted verbatim."""
    PENDING = "pending"
    PROCESSING = "Processing"
    DOWNLOAD = "Download"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DOWNLOAD, JobStatus.FAILED)


class JobUpdate(BaseModel):
    """
    Sparse patch for a job row.

    Only fields explicitly set on the instance are written; a field set to
    None clears the column.
    """
    status: Optional[JobStatus] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    download_url: Optional[str] = None
    error: Optional[str] = None

    brand_id: Optional[str] = None
    campaign_ids: Optional[List[Any]] = None
    location_ids: Optional[List[Any]] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    home_page_details: Optional[Any] = None
    logo: Optional[str] = None
    currency: Optional[str] = None
    time_zone: Optional[str] = None
    level: Optional[str] = None

    def to_columns(self) -> dict:
        """Explicitly supplied fields as a column -> value mapping."""
        columns = self.model_dump(exclude_unset=True)
        if isinstance(columns.get("status"), JobStatus):
            columns["status"] = columns["status"].value
        return columns


class JobResponse(BaseModel):
    """Schema for job response."""
    id: str
    brand_id: str
    campaign_ids: Optional[List[Any]] = None
    location_ids: Optional[List[Any]] = None
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    home_page_details: Optional[Any] = None
    logo: Optional[str] = None
    currency: Optional[str] = None
    time_zone: Optional[str] = None
    level: Optional[str] = None
    status: str
    progress: int
    download_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True
