"""Enum definitions for canonical contracts."""

from __future__ import annotations

from enum import Enum


class FlowStep(str, Enum):
    CAPTURE = "capture"
    PROCESSING = "processing"
    REVIEW = "review"
    VERIFICATION = "verification"
    REPORT = "report"


class TransitionReason(str, Enum):
    USER_ACTION = "user_action"
    AUTO_ADVANCE = "auto_advance"
    ERROR_RECOVERY = "error_recovery"
    RETRY = "retry"


class PipelineStage(str, Enum):
    VALIDATION = "validation"
    OPTIMIZATION = "optimization"
    UPLOAD = "upload"
    PROCESSING_START = "processing_start"
    PROCESSING = "processing"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    FINALIZING = "finalizing"
    COMPLETE = "complete"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReceiptCategory(str, Enum):
    FUEL = "Fuel"
    MAINTENANCE = "Maintenance"
    OTHER = "Other"


class ReceiptStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"


class ValidationSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class CaptureSource(str, Enum):
    CAMERA = "camera"
    GALLERY = "gallery"


FLOW_STEP_ORDER: tuple[FlowStep, ...] = (
    FlowStep.CAPTURE,
    FlowStep.PROCESSING,
    FlowStep.REVIEW,
    FlowStep.VERIFICATION,
    FlowStep.REPORT,
)

LEGACY_JOB_STATUS_MAP: dict[str, JobStatus] = {
    "pending": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "processing": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "active": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "complete": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
}


def normalize_job_status(raw_value: str | JobStatus) -> JobStatus:
    """Normalize backend job status labels into canonical enum values."""
    if isinstance(raw_value, JobStatus):
        return raw_value
    normalized = LEGACY_JOB_STATUS_MAP.get(raw_value.strip().lower())
    if normalized is None:
        raise ValueError(f"Unsupported job status: {raw_value}")
    return normalized


def normalize_category(raw_value: object) -> ReceiptCategory:
    """Map a free-form classification label onto a receipt category."""
    if isinstance(raw_value, ReceiptCategory):
        return raw_value
    if isinstance(raw_value, str):
        for category in ReceiptCategory:
            if category.value.lower() == raw_value.strip().lower():
                return category
    return ReceiptCategory.OTHER
