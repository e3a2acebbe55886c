# Pydantic schemas package
from app.schemas.job import JobResponse, JobStatus, JobUpdate
from app.schemas.report import (
    ReportLevel, ReportParameters, CreateReportRequest, GenerateReportRequest,
    GenerateReportResponse, CreateReportResponse, DiagnoseUrlRequest, DiagnoseUrlResponse
)

__all__ = [
    "JobResponse", "JobStatus", "JobUpdate",
    # Report schemas
    "ReportLevel", "ReportParameters", "CreateReportRequest", "GenerateReportRequest",
    "GenerateReportResponse", "CreateReportResponse", "DiagnoseUrlRequest", "DiagnoseUrlResponse",
]
