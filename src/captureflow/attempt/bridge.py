"""Translate pipeline engine callbacks into attempt events."""

from __future__ import annotations

import logging
from typing import Callable

from captureflow.attempt.events import (
    ClassifyComplete,
    ClassifyProgress,
    ExtractComplete,
    Fail,
    ImageCaptured,
    OptimizeComplete,
    OptimizeProgress,
    ProcessProgress,
    ProcessStarted,
    UploadComplete,
    UploadProgress,
    UploadStarted,
)
from captureflow.attempt.machine import AttemptStateMachine
from captureflow.attempt.states import (
    PIPELINE_STATES,
    AttemptState,
    Capturing,
    Classifying,
    Extracting,
    Optimizing,
    Processing,
    Uploading,
)
from captureflow.pipeline.engine import CurrentJob
from captureflow.pipeline.progress import STAGE_BANDS
from captureflow.schemas.enums import PipelineStage
from captureflow.schemas.result_models import ProcessingError, ProcessingResult

LOGGER = logging.getLogger(__name__)

_STATE_ORDER = ("optimizing", "uploading", "processing", "extracting", "classifying")

# Attempt state each engine stage belongs to.
_STAGE_TARGETS: dict[PipelineStage, str] = {
    PipelineStage.VALIDATION: "optimizing",
    PipelineStage.OPTIMIZATION: "optimizing",
    PipelineStage.UPLOAD: "uploading",
    PipelineStage.PROCESSING_START: "processing",
    PipelineStage.PROCESSING: "processing",
    PipelineStage.EXTRACTING: "extracting",
    PipelineStage.CLASSIFYING: "classifying",
    PipelineStage.FINALIZING: "classifying",
    PipelineStage.COMPLETE: "classifying",
}


def _fraction(percentage: float, low: float, high: float) -> float:
    return min(max((percentage - low) / (high - low), 0.0), 1.0)


class PipelineAttemptBridge:
    """Feed one engine run into an attempt state machine.

    Callbacks arriving after the attempt has left the pipeline states
    (cancelled, failed, reviewing) are discarded.
    """

    def __init__(
        self,
        machine: AttemptStateMachine,
        *,
        job_source: Callable[[], CurrentJob | None] | None = None,
    ) -> None:
        self.machine = machine
        self._job_source = job_source

    def begin(self, image_ref: str) -> AttemptState:
        """Move a fresh attempt into ``optimizing`` for ``image_ref``."""
        if not isinstance(self.machine.state, Capturing):
            self.machine.start_capture()
        return self.machine.dispatch(ImageCaptured(image_ref=image_ref))

    def on_progress(self, percentage: float, stage: str, description: str = "") -> None:
        if not isinstance(self.machine.state, PIPELINE_STATES):
            LOGGER.debug("Discarding late progress %.1f (%s)", percentage, stage)
            return
        try:
            pipeline_stage = PipelineStage(stage)
        except ValueError:
            LOGGER.debug("Unknown pipeline stage %r", stage)
            return

        self._advance_to(_STAGE_TARGETS[pipeline_stage])
        self._sync_handles()
        state = self.machine.state
        if isinstance(state, Optimizing):
            low, _ = STAGE_BANDS[PipelineStage.VALIDATION]
            _, high = STAGE_BANDS[PipelineStage.OPTIMIZATION]
            self.machine.dispatch(OptimizeProgress(_fraction(percentage, low, high)))
        elif isinstance(state, Uploading):
            low, high = STAGE_BANDS[PipelineStage.UPLOAD]
            self.machine.dispatch(UploadProgress(_fraction(percentage, low, high)))
        elif isinstance(state, (Processing, Extracting)):
            low, high = STAGE_BANDS[PipelineStage.PROCESSING]
            self.machine.dispatch(ProcessProgress(_fraction(percentage, low, high)))
        elif isinstance(state, Classifying):
            low, _ = STAGE_BANDS[PipelineStage.PROCESSING]
            _, high = STAGE_BANDS[PipelineStage.FINALIZING]
            self.machine.dispatch(ClassifyProgress(_fraction(percentage, low, high)))

    def finish(self, result: ProcessingResult) -> AttemptState:
        """Complete the pipeline part of the attempt; lands in ``reviewing``."""
        if not isinstance(self.machine.state, PIPELINE_STATES):
            return self.machine.state
        self._advance_to("classifying", text=result.extracted_text)
        self.machine.dispatch(ClassifyProgress(1.0))
        return self.machine.dispatch(ClassifyComplete(result=result))

    def fail(self, error: ProcessingError) -> AttemptState:
        return self.machine.dispatch(Fail(error=error))

    def _advance_to(self, target: str, *, text: str = "") -> None:
        target_index = _STATE_ORDER.index(target)
        while True:
            self._sync_handles()
            state = self.machine.state
            if not isinstance(state, PIPELINE_STATES):
                return
            if _STATE_ORDER.index(state.status) >= target_index:
                return
            if isinstance(state, Optimizing):
                self.machine.dispatch(OptimizeComplete())
            elif isinstance(state, Uploading):
                self.machine.dispatch(UploadComplete())
            elif isinstance(state, Processing) and target == "extracting":
                self.machine.dispatch(ProcessProgress(state.progress, stage="extracting"))
            elif isinstance(state, (Processing, Extracting)):
                self.machine.dispatch(ExtractComplete(text=text))
            else:
                return

    def _sync_handles(self) -> None:
        if self._job_source is None:
            return
        job = self._job_source()
        if job is None:
            return
        # A retried attempt resumes with the previous run's handles.
        state = self.machine.state
        if isinstance(state, Uploading) and job.upload_id and job.upload_id != state.upload_id:
            self.machine.dispatch(UploadStarted(upload_id=job.upload_id))
        elif (
            isinstance(state, (Processing, Extracting))
            and job.job_id
            and job.job_id != state.job_id
        ):
            self.machine.dispatch(ProcessStarted(job_id=job.job_id))
