"""Staged pipeline engine: validate, optimize, upload, process, finalize."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from captureflow.clock import Clock, SystemClock, new_correlation_id
from captureflow.config.models import PipelineConfig
from captureflow.errors import (
    ErrorCode,
    PipelineError,
    cancelled_error,
    normalize_exception,
)
from captureflow.observability.tracing import NoOpTracer, TracerProtocol
from captureflow.pipeline.optimizer import (
    ImageOptimizer,
    OptimizedImage,
    PillowImageOptimizer,
)
from captureflow.pipeline.progress import (
    ProgressCallback,
    ProgressReporter,
    backend_stage,
    band_progress,
    describe_backend_stage,
    polled_progress,
)
from captureflow.pipeline.transform import transform_backend_result
from captureflow.pipeline.validation import ValidatedImage, validate_image_file
from captureflow.remote.client import RemoteOcrService
from captureflow.resilience.cancellation import CancellationToken
from captureflow.schemas.enums import JobStatus, PipelineStage
from captureflow.schemas.remote_models import FileMeta
from captureflow.schemas.result_models import ProcessingResult
from captureflow.security.redaction import redact_text

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentJob:
    """Remote handles of the run in progress."""

    correlation_id: str
    upload_id: str | None
    job_id: str | None


@dataclass
class _Run:
    correlation_id: str
    token: CancellationToken
    reporter: ProgressReporter
    stage: PipelineStage = PipelineStage.VALIDATION
    upload_id: str | None = None
    job_id: str | None = None


class PipelineEngine:
    """Drive one image at a time through the remote extraction pipeline.

    Only one ``process_image`` call may be in flight; a concurrent call is
    rejected with ALREADY_PROCESSING instead of being queued. Every failure
    leaves the engine as a ``PipelineError``.
    """

    def __init__(
        self,
        *,
        config: PipelineConfig,
        service: RemoteOcrService,
        optimizer: ImageOptimizer | None = None,
        tracer: TracerProtocol | None = None,
        clock: Clock | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.service = service
        self.optimizer = optimizer or PillowImageOptimizer.from_config(config)
        self.tracer = tracer or NoOpTracer()
        self._clock = clock or SystemClock()
        self._sleep = sleep_fn
        self._run: _Run | None = None

    @property
    def is_processing(self) -> bool:
        return self._run is not None

    @property
    def current_job(self) -> CurrentJob | None:
        if self._run is None:
            return None
        return CurrentJob(
            correlation_id=self._run.correlation_id,
            upload_id=self._run.upload_id,
            job_id=self._run.job_id,
        )

    async def process_image(
        self,
        image_ref: str,
        on_progress: ProgressCallback | None = None,
        on_cancel_check: Callable[[], bool] | None = None,
        correlation_id: str | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> ProcessingResult:
        if self._run is not None:
            raise PipelineError(
                ErrorCode.ALREADY_PROCESSING,
                "Another image is already being processed",
                stage=PipelineStage.VALIDATION.value,
                retryable=False,
            )

        parent = cancel_token or CancellationToken()
        token = parent.child(on_cancel_check) if on_cancel_check else parent.child()
        run = _Run(
            correlation_id=correlation_id or new_correlation_id(self._clock.now()),
            token=token,
            reporter=ProgressReporter(on_progress, token=token),
        )
        self._run = run
        self.tracer.start_run(
            correlation_id=run.correlation_id,
            image_ref=image_ref,
            metadata={"max_file_size_bytes": self.config.max_file_size_bytes},
        )
        LOGGER.info("[%s] Processing %s", run.correlation_id, Path(image_ref).name)
        try:
            validated = await self._validate(run, image_ref)
            optimized = await self._optimize(run, validated)
            upload_id = await self._upload(run, optimized)
            job_id = await self._start_processing(run, upload_id)
            payload = await self._poll(run, job_id)
            result = self._finalize(run, payload, optimized, image_ref)
        except Exception as exc:
            error = normalize_exception(exc, stage=run.stage.value)
            if run.token.cancelled and not error.is_cancellation:
                error = cancelled_error(run.stage.value)
            self._record_failure(run, error)
            if error is exc:
                raise
            raise error from exc
        finally:
            self._run = None

        self.tracer.finish_run(
            correlation_id=run.correlation_id,
            status="completed",
            output_payload={"confidence": result.confidence},
        )
        LOGGER.info("[%s] Processing complete", run.correlation_id)
        return result

    async def cancel_processing(self) -> None:
        """Cancel the run in progress. Never raises."""
        run = self._run
        if run is None:
            return
        run.token.cancel()
        LOGGER.info("[%s] Cancellation requested", run.correlation_id)
        try:
            self.service.cancel_all_requests()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to abort in-flight requests: %s", exc)
        if run.job_id is None:
            return
        try:
            await self.service.cancel_job(run.job_id, correlation_id=run.correlation_id)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "[%s] Remote cancel of job %s failed: %s",
                run.correlation_id,
                run.job_id,
                redact_text(str(exc)),
            )

    async def _validate(self, run: _Run, image_ref: str) -> ValidatedImage:
        self._enter(run, PipelineStage.VALIDATION, "Validating image...")
        validated = await asyncio.to_thread(validate_image_file, image_ref, self.config)
        run.reporter.report(
            band_progress(PipelineStage.VALIDATION, 1.0),
            PipelineStage.VALIDATION,
            "Image validated",
        )
        return validated

    async def _optimize(self, run: _Run, image: ValidatedImage) -> OptimizedImage:
        self._enter(run, PipelineStage.OPTIMIZATION, "Optimizing image...")
        optimized = await self.optimizer.optimize(image)
        run.reporter.report(
            band_progress(PipelineStage.OPTIMIZATION, 1.0),
            PipelineStage.OPTIMIZATION,
            "Image optimized",
        )
        return optimized

    async def _upload(self, run: _Run, image: OptimizedImage) -> str:
        self._enter(run, PipelineStage.UPLOAD, "Preparing upload...")
        data = await asyncio.to_thread(image.path.read_bytes)
        session = await self.service.create_upload_session(
            FileMeta(
                filename=image.path.name,
                file_size=len(data),
                mime_type=image.mime_type,
                chunk_size=self.config.chunk_size_bytes,
            ),
            correlation_id=run.correlation_id,
        )
        run.upload_id = session.upload_id
        chunk_size = session.chunk_size or self.config.chunk_size_bytes
        total_chunks = max(1, math.ceil(len(data) / chunk_size))
        if total_chunks > session.max_chunks:
            raise PipelineError(
                ErrorCode.FILE_TOO_LARGE,
                f"Upload needs {total_chunks} chunks; session allows {session.max_chunks}",
                stage=PipelineStage.UPLOAD.value,
            )

        for index in range(total_chunks):
            run.token.raise_if_cancelled(PipelineStage.UPLOAD.value)
            chunk = data[index * chunk_size : (index + 1) * chunk_size]
            ack = await self.service.upload_chunk(
                session.upload_id,
                index,
                chunk,
                total_chunks=total_chunks,
                correlation_id=run.correlation_id,
            )
            if not ack.success:
                raise PipelineError(
                    ErrorCode.API_ERROR,
                    f"Chunk {index} was rejected",
                    stage=PipelineStage.UPLOAD.value,
                    retryable=True,
                )
            run.reporter.report(
                band_progress(PipelineStage.UPLOAD, (index + 1) / total_chunks),
                PipelineStage.UPLOAD,
                f"Uploading image... ({index + 1}/{total_chunks})",
            )
            if ack.complete:
                break
        return session.upload_id

    async def _start_processing(self, run: _Run, upload_id: str) -> str:
        self._enter(run, PipelineStage.PROCESSING_START, "Starting processing...")
        job = await self.service.start_processing(
            upload_id, correlation_id=run.correlation_id
        )
        run.job_id = job.job_id
        run.reporter.report(
            band_progress(PipelineStage.PROCESSING_START, 1.0),
            PipelineStage.PROCESSING_START,
            "Processing started",
        )
        return job.job_id

    async def _poll(self, run: _Run, job_id: str) -> dict[str, Any]:
        self._enter(run, PipelineStage.PROCESSING, "Processing image...")
        deadline = self._clock.monotonic() + self.config.poll_timeout_seconds
        stage = PipelineStage.PROCESSING.value
        while True:
            run.token.raise_if_cancelled(stage)
            status = await self.service.get_job_status(
                job_id, correlation_id=run.correlation_id
            )
            run.token.raise_if_cancelled(stage)
            run.reporter.report(
                polled_progress(status.progress),
                backend_stage(status.stage),
                describe_backend_stage(status.stage, status.stage_description),
            )
            if status.status == JobStatus.COMPLETED:
                if not status.result:
                    raise PipelineError(
                        ErrorCode.NO_RESULT,
                        "Job completed without a result",
                        stage=stage,
                        retryable=True,
                    )
                return status.result
            if status.status == JobStatus.FAILED:
                error = status.error
                raise PipelineError(
                    error.code if error else ErrorCode.PROCESSING_FAILED,
                    error.message if error else "OCR processing failed",
                    stage=stage,
                    retryable=True,
                    context={"job_id": job_id},
                )
            remaining = deadline - self._clock.monotonic()
            if remaining <= 0:
                raise PipelineError(
                    ErrorCode.TIMEOUT,
                    f"Processing did not finish within {self.config.poll_timeout_seconds}s",
                    stage=stage,
                    retryable=True,
                    context={"job_id": job_id},
                )
            await self._sleep(min(self.config.poll_interval_seconds, remaining))

    def _finalize(
        self,
        run: _Run,
        payload: dict[str, Any],
        image: OptimizedImage,
        image_ref: str,
    ) -> ProcessingResult:
        self._enter(run, PipelineStage.FINALIZING, "Finalizing results...")
        result = transform_backend_result(
            payload,
            image_ref=str(image.path),
            original_image_ref=image_ref,
            metrics=image.metrics,
            now=self._clock.now(),
        )
        self._close_stage(run, "completed")
        run.reporter.report(100.0, PipelineStage.COMPLETE, "Processing complete")
        return result

    def _enter(self, run: _Run, stage: PipelineStage, description: str) -> None:
        run.token.raise_if_cancelled(stage.value)
        if stage != PipelineStage.VALIDATION:
            self._close_stage(run, "completed")
        run.stage = stage
        self.tracer.stage_started(correlation_id=run.correlation_id, stage=stage.value)
        LOGGER.debug("[%s] %s", run.correlation_id, description)
        run.reporter.report(band_progress(stage, 0.0), stage, description)

    def _close_stage(self, run: _Run, status: str, **metadata: Any) -> None:
        self.tracer.stage_finished(
            correlation_id=run.correlation_id,
            stage=run.stage.value,
            status=status,
            metadata=metadata,
        )

    def _record_failure(self, run: _Run, error: PipelineError) -> None:
        self._close_stage(run, "failed", code=error.raw_code)
        self.tracer.finish_run(
            correlation_id=run.correlation_id,
            status="failed",
            metadata={"code": error.raw_code},
        )
        if error.is_cancellation:
            LOGGER.info("[%s] Cancelled during %s", run.correlation_id, error.stage)
            return
        LOGGER.warning(
            "[%s] %s failed (%s, retryable=%s): %s",
            run.correlation_id,
            error.stage,
            error.raw_code,
            error.retryable,
            redact_text(error.message),
        )
