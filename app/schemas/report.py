"""
Report Schemas
Pydantic models for report generation API requests and responses.
"""

import re
from datetime import datetime
from typing import Optional, List, Any, Union, Dict
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel


# Brand ids become a storage path segment
BRAND_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class ReportLevel:
    """Report scope values sent by the dashboard."""
    LOCATION = "Location Level"
    CAMPAIGN = "Campaign Level"


class ReportParameters(BaseModel):
    """Parameters describing which report to render."""
    brand_id: str
    level: Optional[str] = None
    campaign_ids: List[Union[str, int, Dict[str, Any]]] = []
    location_ids: List[Union[str, int, Dict[str, Any]]] = []
    from_date: Optional[str] = None
    to_date: Optional[str] = None
    currency: Optional[str] = None
    time_zone: Optional[str] = None
    home_page_details: Optional[Any] = None
    logo: Optional[str] = None
    # Chart names to wait for instead of the default set
    selectors: Optional[List[str]] = None

    @field_validator("brand_id")
    @classmethod
    def check_brand_id(cls, v: str) -> str:
        if not BRAND_ID_PATTERN.match(v):
            raise ValueError("brandId must contain only letters, digits, '-' and '_'")
        return v

    @field_validator("campaign_ids", "location_ids", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return [] if v is None else v

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateReportRequest(ReportParameters):
    """Schema for queued report creation."""
    base_url: str = Field(alias="baseURL")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("baseURL must be an http(s) URL")
        return v


class GenerateReportRequest(CreateReportRequest):
    """Schema for synchronous generation of an existing job."""
    job_id: str

    @field_validator("job_id")
    @classmethod
    def check_job_id(cls, v: str) -> str:
        # The id becomes part of the artifact file name
        if not BRAND_ID_PATTERN.match(v):
            raise ValueError("jobId must contain only letters, digits, '-' and '_'")
        return v


class GenerateReportResponse(BaseModel):
    """Schema for a completed generation."""
    success: bool = True
    url: str
    loaded_charts: List[str] = []
    failed_charts: List[str] = []

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CreateReportResponse(BaseModel):
    """Schema for an accepted queued report."""
    job_id: str
    status: str
    message: str

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class DiagnoseUrlRequest(BaseModel):
    """Schema for a navigation probe request."""
    url: str


class DiagnoseUrlResponse(BaseModel):
    """Schema for a navigation probe result."""
    success: bool
    load_time: int
    title: Optional[str] = None
    final_url: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime

    class Config:
        alias_generator = to_camel
        populate_by_name = True
