"""Schema contract exports."""

from captureflow.schemas.draft_models import (
    EDITABLE_FIELDS,
    DraftComparison,
    DraftState,
    FieldDifference,
    FieldValidationError,
    FieldValidationResult,
    FormValidationResult,
    ReceiptRecord,
)
from captureflow.schemas.enums import (
    CaptureSource,
    FlowStep,
    JobStatus,
    PipelineStage,
    ReceiptCategory,
    ReceiptStatus,
    TransitionReason,
    ValidationSeverity,
)
from captureflow.schemas.flow_models import (
    Flow,
    FlowError,
    FlowMetrics,
    FlowSnapshot,
    FlowTransition,
    NavigationGuardResult,
)
from captureflow.schemas.remote_models import (
    ChunkAck,
    FileMeta,
    JobStatusResponse,
    ProcessingJob,
    UploadSession,
)
from captureflow.schemas.result_models import (
    Classification,
    Dimensions,
    OptimizationMetrics,
    ProcessingError,
    ProcessingResult,
)

__all__ = [
    "CaptureSource",
    "ChunkAck",
    "Classification",
    "Dimensions",
    "DraftComparison",
    "DraftState",
    "EDITABLE_FIELDS",
    "FieldDifference",
    "FieldValidationError",
    "FieldValidationResult",
    "FileMeta",
    "Flow",
    "FlowError",
    "FlowMetrics",
    "FlowSnapshot",
    "FlowStep",
    "FlowTransition",
    "FormValidationResult",
    "JobStatus",
    "JobStatusResponse",
    "NavigationGuardResult",
    "OptimizationMetrics",
    "PipelineStage",
    "ProcessingError",
    "ProcessingJob",
    "ProcessingResult",
    "ReceiptCategory",
    "ReceiptRecord",
    "ReceiptStatus",
    "TransitionReason",
    "UploadSession",
    "ValidationSeverity",
]
