"""Attempt states: a closed, status-discriminated union of frozen models."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field

from captureflow.constants import DEFAULT_MAX_RETRIES
from captureflow.schemas.base import FrozenSchemaModel
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import CaptureSource
from captureflow.schemas.result_models import ProcessingError, ProcessingResult

Fraction = Annotated[float, Field(ge=0.0, le=1.0)]


class Idle(FrozenSchemaModel):
    status: Literal["idle"] = "idle"


class Capturing(FrozenSchemaModel):
    status: Literal["capturing"] = "capturing"
    source: CaptureSource = CaptureSource.CAMERA


class Optimizing(FrozenSchemaModel):
    status: Literal["optimizing"] = "optimizing"
    progress: Fraction = 0.0
    image_ref: str


class Uploading(FrozenSchemaModel):
    status: Literal["uploading"] = "uploading"
    progress: Fraction = 0.0
    image_ref: str
    upload_id: str = ""


class Processing(FrozenSchemaModel):
    status: Literal["processing"] = "processing"
    progress: Fraction = 0.0
    image_ref: str
    job_id: str = ""


class Extracting(FrozenSchemaModel):
    status: Literal["extracting"] = "extracting"
    progress: Fraction = 0.0
    image_ref: str
    job_id: str = ""


class Classifying(FrozenSchemaModel):
    status: Literal["classifying"] = "classifying"
    progress: Fraction = 0.0
    image_ref: str
    text: str = ""


class Reviewing(FrozenSchemaModel):
    status: Literal["reviewing"] = "reviewing"
    result: ProcessingResult
    changes: dict[str, str] = Field(default_factory=dict)


class Editing(FrozenSchemaModel):
    status: Literal["editing"] = "editing"
    result: ProcessingResult
    changes: dict[str, str] = Field(default_factory=dict)
    pending_changes: dict[str, str] = Field(default_factory=dict)


class Saving(FrozenSchemaModel):
    status: Literal["saving"] = "saving"
    record: ReceiptRecord


class Complete(FrozenSchemaModel):
    status: Literal["complete"] = "complete"
    record: ReceiptRecord


class ErrorState(FrozenSchemaModel):
    status: Literal["error"] = "error"
    error: ProcessingError
    previous_state: AttemptState
    can_retry: bool = False


AttemptState = Annotated[
    Union[
        Idle,
        Capturing,
        Optimizing,
        Uploading,
        Processing,
        Extracting,
        Classifying,
        Reviewing,
        Editing,
        Saving,
        Complete,
        ErrorState,
    ],
    Field(discriminator="status"),
]

ErrorState.model_rebuild()

# States whose progress is driven by pipeline callbacks.
PIPELINE_STATES = (Optimizing, Uploading, Processing, Extracting, Classifying)


class AttemptContext(FrozenSchemaModel):
    """Data that lives for the whole attempt, across state changes."""

    correlation_id: str | None = None
    started_at: datetime | None = None
    state_entered_at: datetime | None = None
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    stage_timings: dict[str, float] = Field(default_factory=dict)


class AttemptSnapshot(FrozenSchemaModel):
    """State plus context; the unit the reducer consumes and produces."""

    state: AttemptState = Field(default_factory=Idle)
    context: AttemptContext = Field(default_factory=AttemptContext)
