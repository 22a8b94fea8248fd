"""Flow journey contracts owned by the flow orchestrator."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from captureflow.schemas.base import StrictSchemaModel
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.result_models import ProcessingError, ProcessingResult


class FlowTransition(StrictSchemaModel):
    """One step change in a flow's transition log."""

    from_step: FlowStep
    to_step: FlowStep
    reason: TransitionReason
    timestamp: datetime


class FlowError(StrictSchemaModel):
    """Error record appended to a flow's error history."""

    step: FlowStep | None = None
    stage: str | None = None
    code: str = Field(min_length=1)
    message: str
    user_message: str = ""
    timestamp: datetime
    retryable: bool = False
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_processing_error(
        cls, error: ProcessingError, *, step: FlowStep | None
    ) -> "FlowError":
        return cls(
            step=step,
            stage=error.stage,
            code=error.code,
            message=error.message,
            user_message=error.user_message,
            timestamp=error.timestamp,
            retryable=error.retryable,
            context=dict(error.context),
        )


class FlowMetrics(StrictSchemaModel):
    """Per-flow analytics."""

    step_durations: dict[FlowStep, float] = Field(default_factory=dict)
    total_duration: float = Field(default=0.0, ge=0.0)
    retry_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    completion_rate: Literal[0, 1] = 0
    abandonment_step: FlowStep | None = None


class Flow(StrictSchemaModel):
    """One end-to-end journey from capture to saved record."""

    id: str = Field(min_length=1)
    image_ref: str = ""
    current_step: FlowStep = FlowStep.CAPTURE
    created_at: datetime
    is_complete: bool = False
    step_history: list[FlowStep] = Field(default_factory=list)
    transitions: list[FlowTransition] = Field(default_factory=list)
    error_history: list[FlowError] = Field(default_factory=list)
    last_error: FlowError | None = None
    metrics: FlowMetrics = Field(default_factory=FlowMetrics)
    result: ProcessingResult | None = None
    draft: ReceiptRecord | None = None

    def has_visited(self, step: FlowStep) -> bool:
        return step in self.step_history

    @property
    def can_retry(self) -> bool:
        return bool(self.last_error and self.last_error.retryable)


class NavigationAction(StrictSchemaModel):
    """Suggested follow-up when navigation is denied."""

    type: Literal["redirect", "retry", "cancel"]
    target: FlowStep | None = None
    message: str | None = None


class NavigationGuardResult(StrictSchemaModel):
    """Outcome of a navigation guard check."""

    allowed: bool
    reason: str | None = None
    suggested_action: NavigationAction | None = None


class FlowSnapshot(StrictSchemaModel):
    """Persisted form of the orchestrator's flow map."""

    flows: dict[str, Flow] = Field(default_factory=dict)
    active_flow_id: str | None = None
    has_active_flow: bool = False
