"""httpx-backed client for the remote OCR service."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from pydantic import ValidationError

from captureflow.clock import new_correlation_id
from captureflow.config.models import RemoteServiceConfig
from captureflow.constants import CORRELATION_HEADER
from captureflow.errors import ErrorCode, RemoteServiceError
from captureflow.resilience.retry import AsyncRetryExecutor, RetryPolicy
from captureflow.schemas.base import RemotePayloadModel
from captureflow.schemas.remote_models import (
    CancelAck,
    ChunkAck,
    FileMeta,
    JobStatusResponse,
    ProcessingJob,
    UploadSession,
)
from captureflow.security.redaction import redact_text

LOGGER = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=RemotePayloadModel)

RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def is_retryable_error(exc: Exception) -> bool:
    return isinstance(exc, RemoteServiceError) and exc.retryable


class HttpOcrServiceClient:
    """Remote OCR client speaking the ``/api/ocr`` JSON protocol."""

    def __init__(
        self,
        config: RemoteServiceConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )
        self._retry = AsyncRetryExecutor(
            retry_policy or RetryPolicy(max_attempts=3, backoff_seconds=1.0),
            sleep_fn=sleep_fn,
        )
        self._in_flight: set[asyncio.Task[httpx.Response]] = set()
        # Bumped by cancel_all_requests; requests started under an older
        # generation send nothing further.
        self._generation = 0

    async def __aenter__(self) -> HttpOcrServiceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.cancel_all_requests()
        await self._client.aclose()

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    async def create_upload_session(
        self, file_meta: FileMeta, *, correlation_id: str | None = None
    ) -> UploadSession:
        payload = await self._request(
            "POST",
            "/api/ocr/upload",
            correlation_id=correlation_id,
            json=file_meta.model_dump(by_alias=True),
        )
        return _parse(UploadSession, payload, "/api/ocr/upload")

    async def upload_chunk(
        self,
        upload_id: str,
        chunk_index: int,
        data: bytes,
        *,
        total_chunks: int,
        correlation_id: str | None = None,
    ) -> ChunkAck:
        payload = await self._request(
            "POST",
            "/api/ocr/chunk",
            correlation_id=correlation_id,
            data={
                "uploadId": upload_id,
                "chunkIndex": str(chunk_index),
                "totalChunks": str(total_chunks),
            },
            files={
                "chunk": (f"chunk-{chunk_index}", data, "application/octet-stream")
            },
            max_attempts=self.config.chunk_retries + 1,
        )
        return _parse(ChunkAck, payload, "/api/ocr/chunk")

    async def start_processing(
        self, upload_id: str, *, correlation_id: str | None = None
    ) -> ProcessingJob:
        payload = await self._request(
            "POST",
            "/api/ocr/process",
            correlation_id=correlation_id,
            json={"uploadId": upload_id},
        )
        return _parse(ProcessingJob, payload, "/api/ocr/process")

    async def get_job_status(
        self, job_id: str, *, correlation_id: str | None = None
    ) -> JobStatusResponse:
        path = f"/api/ocr/status/{job_id}"
        payload = await self._request("GET", path, correlation_id=correlation_id)
        return _parse(JobStatusResponse, payload, path)

    async def cancel_job(
        self, job_id: str, *, correlation_id: str | None = None
    ) -> CancelAck:
        path = f"/api/ocr/job/{job_id}"
        payload = await self._request("DELETE", path, correlation_id=correlation_id)
        return _parse(CancelAck, payload, path)

    def cancel_all_requests(self) -> None:
        """Abort in-flight requests and stop retries of requests already issued.

        Requests started afterwards are unaffected.
        """
        self._generation += 1
        for task in list(self._in_flight):
            task.cancel()
        if self._in_flight:
            LOGGER.info("Cancelled %s in-flight OCR request(s)", len(self._in_flight))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        correlation_id: str | None,
        max_attempts: int | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers = {CORRELATION_HEADER: correlation_id or new_correlation_id()}
        generation = self._generation

        async def send() -> dict[str, Any]:
            if self._generation != generation:
                raise RemoteServiceError(
                    ErrorCode.CANCELLED.value,
                    f"{method} {path} cancelled",
                    retryable=False,
                )
            return await self._send_once(method, path, headers=headers, **kwargs)

        def should_retry(exc: Exception) -> bool:
            return self._generation == generation and is_retryable_error(exc)

        return await self._retry.run(
            send,
            stage_name=f"{method} {path}",
            should_retry=should_retry,
            max_attempts=max_attempts,
        )

    async def _send_once(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str],
        **kwargs: Any,
    ) -> dict[str, Any]:
        task = asyncio.ensure_future(
            self._client.request(method, path, headers=headers, **kwargs)
        )
        self._in_flight.add(task)
        try:
            response = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise RemoteServiceError(
                ErrorCode.CANCELLED.value,
                f"{method} {path} cancelled",
                retryable=False,
            ) from None
        except httpx.TimeoutException as exc:
            raise RemoteServiceError(
                ErrorCode.TIMEOUT.value,
                f"{method} {path} timed out",
                retryable=True,
            ) from exc
        except httpx.TransportError as exc:
            raise RemoteServiceError(
                ErrorCode.NETWORK_ERROR.value,
                redact_text(f"{method} {path} failed: {exc}"),
                retryable=True,
            ) from exc
        finally:
            self._in_flight.discard(task)

        LOGGER.debug("%s %s -> %s", method, path, response.status_code)
        if response.status_code >= 400:
            raise _http_error(method, path, response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteServiceError(
                ErrorCode.API_ERROR.value,
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise RemoteServiceError(
                ErrorCode.API_ERROR.value,
                f"{method} {path} returned a non-object payload",
                status_code=response.status_code,
            )
        return payload


def _http_error(method: str, path: str, response: httpx.Response) -> RemoteServiceError:
    code = ErrorCode.API_ERROR.value
    detail = response.text[:200]
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict):
            code = str(error.get("code") or code)
            detail = str(error.get("message") or detail)
        elif isinstance(error, str):
            detail = error
    return RemoteServiceError(
        code,
        redact_text(f"{method} {path} failed with HTTP {response.status_code}: {detail}"),
        status_code=response.status_code,
        retryable=is_retryable_status(response.status_code),
    )


def _parse(model: type[ModelT], payload: dict[str, Any], path: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise RemoteServiceError(
            ErrorCode.API_ERROR.value,
            f"Malformed response from {path}: {exc.error_count()} validation error(s)",
        ) from exc
