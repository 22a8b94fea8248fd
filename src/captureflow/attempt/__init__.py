"""Per-attempt processing state machine."""

from captureflow.attempt.bridge import PipelineAttemptBridge
from captureflow.attempt.events import (
    AttemptEvent,
    Cancel,
    ClassifyComplete,
    ClassifyProgress,
    ConfirmChanges,
    DiscardChanges,
    EnterEdit,
    EnterReview,
    ExtractComplete,
    Fail,
    ImageCaptured,
    OptimizeComplete,
    OptimizeProgress,
    ProcessProgress,
    ProcessStarted,
    Reset,
    Retry,
    SaveComplete,
    SaveStart,
    StartCapture,
    UpdateField,
    UploadComplete,
    UploadProgress,
    UploadStarted,
)
from captureflow.attempt.machine import AttemptStateMachine, reduce_attempt
from captureflow.attempt.progress import attempt_progress
from captureflow.attempt.states import (
    AttemptContext,
    AttemptSnapshot,
    AttemptState,
    Capturing,
    Classifying,
    Complete,
    Editing,
    ErrorState,
    Extracting,
    Idle,
    Optimizing,
    Processing,
    Reviewing,
    Saving,
    Uploading,
)

__all__ = [
    "AttemptContext",
    "AttemptEvent",
    "AttemptSnapshot",
    "AttemptState",
    "AttemptStateMachine",
    "Cancel",
    "Capturing",
    "ClassifyComplete",
    "ClassifyProgress",
    "Classifying",
    "Complete",
    "ConfirmChanges",
    "DiscardChanges",
    "Editing",
    "EnterEdit",
    "EnterReview",
    "ErrorState",
    "ExtractComplete",
    "Extracting",
    "Fail",
    "Idle",
    "ImageCaptured",
    "OptimizeComplete",
    "OptimizeProgress",
    "Optimizing",
    "PipelineAttemptBridge",
    "ProcessProgress",
    "ProcessStarted",
    "Processing",
    "Reset",
    "Retry",
    "Reviewing",
    "SaveComplete",
    "SaveStart",
    "Saving",
    "StartCapture",
    "UpdateField",
    "UploadComplete",
    "UploadProgress",
    "UploadStarted",
    "Uploading",
    "attempt_progress",
    "reduce_attempt",
]
