"""Request/response contracts of the remote OCR service."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from captureflow.schemas.base import RemotePayloadModel
from captureflow.schemas.enums import JobStatus, normalize_job_status


class FileMeta(RemotePayloadModel):
    """Metadata of the payload an upload session is sized for."""

    filename: str = Field(min_length=1)
    file_size: int = Field(ge=0)
    mime_type: str = "image/jpeg"
    chunk_size: int = Field(gt=0)


class UploadSession(RemotePayloadModel):
    """Server-allocated chunked upload session."""

    upload_id: str = Field(min_length=1)
    max_chunks: int = Field(ge=1)
    chunk_size: int | None = Field(default=None, gt=0)
    expires_at: str | None = None


class ChunkAck(RemotePayloadModel):
    """Acknowledgement of one uploaded chunk."""

    success: bool = True
    received_chunks: int = 0
    total_chunks: int = 0
    complete: bool = False


class ProcessingJob(RemotePayloadModel):
    """Handle of a started remote processing job."""

    job_id: str = Field(min_length=1)
    message: str | None = None


class JobError(RemotePayloadModel):
    """Error reported by the backend for a failed job."""

    code: str = "PROCESSING_FAILED"
    message: str = "OCR processing failed"


class JobStatusResponse(RemotePayloadModel):
    """Polled status of a remote processing job."""

    job_id: str | None = None
    status: JobStatus
    progress: float = 0.0
    stage: str | None = None
    stage_description: str | None = None
    result: dict[str, Any] | None = None
    error: JobError | None = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: str | JobStatus) -> JobStatus:
        return normalize_job_status(value)

    @field_validator("error", mode="before")
    @classmethod
    def coerce_error(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"code": "PROCESSING_FAILED", "message": value}
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class CancelAck(RemotePayloadModel):
    """Acknowledgement of a job cancellation request."""

    success: bool = True
    message: str | None = None
    job_id: str | None = None
