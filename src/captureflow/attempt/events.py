"""Events accepted by the attempt reducer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import CaptureSource
from captureflow.schemas.result_models import (
    OptimizationMetrics,
    ProcessingError,
    ProcessingResult,
)


@dataclass(frozen=True)
class StartCapture:
    source: CaptureSource = CaptureSource.CAMERA
    correlation_id: str | None = None


@dataclass(frozen=True)
class ImageCaptured:
    image_ref: str


@dataclass(frozen=True)
class OptimizeProgress:
    progress: float


@dataclass(frozen=True)
class OptimizeComplete:
    metrics: OptimizationMetrics | None = None


@dataclass(frozen=True)
class UploadStarted:
    upload_id: str


@dataclass(frozen=True)
class UploadProgress:
    progress: float


@dataclass(frozen=True)
class UploadComplete:
    pass


@dataclass(frozen=True)
class ProcessStarted:
    job_id: str


@dataclass(frozen=True)
class ProcessProgress:
    progress: float
    stage: str = "processing"


@dataclass(frozen=True)
class ExtractComplete:
    text: str = ""


@dataclass(frozen=True)
class ClassifyProgress:
    progress: float


@dataclass(frozen=True)
class ClassifyComplete:
    result: ProcessingResult


@dataclass(frozen=True)
class EnterReview:
    pass


@dataclass(frozen=True)
class EnterEdit:
    pass


@dataclass(frozen=True)
class UpdateField:
    field: str
    value: str


@dataclass(frozen=True)
class ConfirmChanges:
    pass


@dataclass(frozen=True)
class DiscardChanges:
    pass


@dataclass(frozen=True)
class SaveStart:
    record: ReceiptRecord


@dataclass(frozen=True)
class SaveComplete:
    record: ReceiptRecord | None = None


@dataclass(frozen=True)
class Fail:
    error: ProcessingError


@dataclass(frozen=True)
class Retry:
    pass


@dataclass(frozen=True)
class Cancel:
    reason: str = "Operation cancelled by user"


@dataclass(frozen=True)
class Reset:
    pass


AttemptEvent = Union[
    StartCapture,
    ImageCaptured,
    OptimizeProgress,
    OptimizeComplete,
    UploadStarted,
    UploadProgress,
    UploadComplete,
    ProcessStarted,
    ProcessProgress,
    ExtractComplete,
    ClassifyProgress,
    ClassifyComplete,
    EnterReview,
    EnterEdit,
    UpdateField,
    ConfirmChanges,
    DiscardChanges,
    SaveStart,
    SaveComplete,
    Fail,
    Retry,
    Cancel,
    Reset,
]
