"""Weighted pipeline progress reporting."""

from __future__ import annotations

import logging
from typing import Callable

from captureflow.resilience.cancellation import CancellationToken
from captureflow.schemas.enums import PipelineStage

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str, str], None]

# Overall percentage range owned by each stage.
STAGE_BANDS: dict[PipelineStage, tuple[float, float]] = {
    PipelineStage.VALIDATION: (0.0, 5.0),
    PipelineStage.OPTIMIZATION: (5.0, 15.0),
    PipelineStage.UPLOAD: (15.0, 30.0),
    PipelineStage.PROCESSING_START: (30.0, 35.0),
    PipelineStage.PROCESSING: (35.0, 90.0),
    PipelineStage.FINALIZING: (90.0, 100.0),
}

BACKEND_STAGE_DESCRIPTIONS: dict[str, str] = {
    "uploading": "Uploading image...",
    "processing": "Processing image...",
    "extracting": "Extracting text from image...",
    "classifying": "Analyzing receipt data...",
}

_BACKEND_STAGES = {
    "processing": PipelineStage.PROCESSING,
    "extracting": PipelineStage.EXTRACTING,
    "classifying": PipelineStage.CLASSIFYING,
}


def band_progress(stage: PipelineStage, fraction: float) -> float:
    """Map a 0..1 fraction of ``stage`` onto the overall 0..100 scale."""
    low, high = STAGE_BANDS[stage]
    return low + (high - low) * min(max(fraction, 0.0), 1.0)


def polled_progress(backend_progress: float) -> float:
    """Map backend-reported 0..100 progress into the polling band."""
    return band_progress(PipelineStage.PROCESSING, backend_progress / 100.0)


def backend_stage(stage: str | None) -> PipelineStage:
    return _BACKEND_STAGES.get((stage or "").lower(), PipelineStage.PROCESSING)


def describe_backend_stage(stage: str | None, description: str | None) -> str:
    if description:
        return description
    return BACKEND_STAGE_DESCRIPTIONS.get((stage or "").lower(), "Processing...")


class ProgressReporter:
    """Deliver progress in non-decreasing order, clamped to 0..100.

    Nothing is delivered once ``token`` reports cancellation.
    """

    def __init__(
        self,
        callback: ProgressCallback | None,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        self._callback = callback
        self._token = token
        self._last = 0.0
        self._reported = False

    @property
    def last_percentage(self) -> float:
        return self._last

    def report(
        self,
        percentage: float,
        stage: PipelineStage,
        description: str = "",
    ) -> None:
        if self._token is not None and self._token.cancelled:
            return
        value = min(max(percentage, 0.0), 100.0)
        if self._reported:
            value = max(value, self._last)
        self._last = value
        self._reported = True
        if self._callback is None:
            return
        try:
            self._callback(value, stage.value, description)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Progress callback raised: %s", exc)
