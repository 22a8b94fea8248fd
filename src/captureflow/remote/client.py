"""Contract of the remote OCR/classification service."""

from __future__ import annotations

from typing import Protocol

from captureflow.schemas.remote_models import (
    CancelAck,
    ChunkAck,
    FileMeta,
    JobStatusResponse,
    ProcessingJob,
    UploadSession,
)


class RemoteOcrService(Protocol):
    """Async collaborator the pipeline engine drives.

    Every call is idempotent on retry except ``upload_chunk``, which is only
    ever retried for the same chunk index.
    """

    async def create_upload_session(
        self, file_meta: FileMeta, *, correlation_id: str | None = None
    ) -> UploadSession: ...

    async def upload_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        data: bytes,
        *,
        total_chunks: int,
        correlation_id: str | None = None,
    ) -> ChunkAck: ...

    async def start_processing(
        self, upload_id: str, *, correlation_id: str | None = None
    ) -> ProcessingJob: ...

    async def get_job_status(
        self, job_id: str, *, correlation_id: str | None = None
    ) -> JobStatusResponse: ...

    async def cancel_job(
        self, job_id: str, *, correlation_id: str | None = None
    ) -> CancelAck: ...

    def cancel_all_requests(self) -> None:
        """Abort every in-flight request; awaiting callers see CANCELLED."""
