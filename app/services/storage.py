"""
Storage Service
Handles report artifact storage - supports Google Cloud Storage, S3, and local filesystem.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from app.core.config import Settings, settings as default_settings
from app.schemas.report import BRAND_ID_PATTERN

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def build_artifact_path(brand_id: str, job_id: str, prefix: str = "") -> str:
    """
    Storage key for a job's PDF: {prefix}/{brand_id}/report-{job_id}.pdf

    Raises:
        ValueError: if brand_id or job_id is not a single safe path segment
    """
    if not BRAND_ID_PATTERN.match(brand_id or ""):
        raise ValueError(f"Invalid brand id for storage path: {brand_id!r}")
    if not BRAND_ID_PATTERN.match(job_id or ""):
        raise ValueError(f"Invalid job id for storage path: {job_id!r}")

    path = f"{brand_id}/report-{job_id}.pdf"
    prefix = prefix.strip("/")
    return f"{prefix}/{path}" if prefix else path


class StorageService:
    """Service for artifact storage operations."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

        # Priority: GCS > Local > S3
        self.use_gcs = self.settings.USE_GCS
        self.use_local = self.settings.USE_LOCAL_STORAGE and not self.use_gcs

        if self.use_gcs:
            from google.cloud import storage
            self.gcs_client = storage.Client(project=self.settings.GCP_PROJECT_ID or None)
            self.bucket_reports = self.gcs_client.bucket(self.settings.GCS_BUCKET_REPORTS)
            logger.info(f"[Storage] Using Google Cloud Storage: {self.settings.GCS_BUCKET_REPORTS}")

        elif self.use_local:
            self.base_path = Path(self.settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

        else:
            import boto3
            from botocore.config import Config
            self.s3 = boto3.client(
                "s3",
                endpoint_url=self.settings.S3_ENDPOINT or None,
                aws_access_key_id=self.settings.S3_ACCESS_KEY or None,
                aws_secret_access_key=self.settings.S3_SECRET_KEY or None,
                region_name=self.settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
            self.bucket = self.settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket}")

    @property
    def backend(self) -> str:
        if self.use_gcs:
            return "gcs"
        return "local" if self.use_local else "s3"

    def artifact_path(self, brand_id: str, job_id: str) -> str:
        return build_artifact_path(brand_id, job_id, self.settings.STORAGE_PREFIX)

    async def upload_bytes(self, data: bytes, path: str, content_type: str = PDF_CONTENT_TYPE) -> str:
        """Upload bytes, overwriting any existing object, and return the storage path."""
        if self.use_gcs:
            await asyncio.to_thread(self._upload_gcs, data, path, content_type)
        elif self.use_local:
            await asyncio.to_thread(self._upload_local, data, path)
        else:
            await asyncio.to_thread(self._upload_s3, data, path, content_type)

        logger.info(f"[Storage] Uploaded {len(data)} bytes to {path}")
        return path

    def _upload_gcs(self, data: bytes, path: str, content_type: str):
        blob = self.bucket_reports.blob(path)
        blob.upload_from_string(data, content_type=content_type)

    def _upload_local(self, data: bytes, path: str):
        file_path = self._local_path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        with open(file_path, "wb") as f:
            f.write(data)

    def _upload_s3(self, data: bytes, path: str, content_type: str):
        self.s3.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type
        )

    def _local_path(self, path: str) -> Path:
        """Resolve a storage key under the local base path, refusing escapes."""
        base = self.base_path.resolve()
        file_path = (base / path).resolve()
        if base != file_path and base not in file_path.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return file_path

    async def get_file(self, path: str) -> bytes:
        """Get file contents."""
        if self.use_gcs:
            blob = self.bucket_reports.blob(path)
            return await asyncio.to_thread(blob.download_as_bytes)
        elif self.use_local:
            return await asyncio.to_thread(self._local_path(path).read_bytes)
        else:
            response = await asyncio.to_thread(self.s3.get_object, Bucket=self.bucket, Key=path)
            return response["Body"].read()

    def get_public_url(self, path: str) -> str:
        """Publicly resolvable URL for a stored artifact."""
        if self.use_gcs:
            return f"https://storage.googleapis.com/{self.settings.GCS_BUCKET_REPORTS}/{path}"
        if self.use_local:
            # Served by the /files route
            return f"{self.settings.PUBLIC_BASE_URL.rstrip('/')}/files/{path}"
        if self.settings.S3_ENDPOINT:
            return f"{self.settings.S3_ENDPOINT.rstrip('/')}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.{self.settings.S3_REGION}.amazonaws.com/{path}"
