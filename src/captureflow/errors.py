"""Error taxonomy and exception types."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from captureflow.schemas.result_models import ProcessingError


class ErrorCategory(str, Enum):
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"
    ALREADY_PROCESSING = "ALREADY_PROCESSING"
    UNKNOWN = "UNKNOWN"


class ErrorCode(str, Enum):
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_SIZE_UNKNOWN = "FILE_SIZE_UNKNOWN"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    NO_RESULT = "NO_RESULT"
    CLASSIFICATION_FAILED = "CLASSIFICATION_FAILED"
    RESULT_TRANSFORMATION_FAILED = "RESULT_TRANSFORMATION_FAILED"
    ALREADY_PROCESSING = "ALREADY_PROCESSING"
    RETRY_LIMIT_EXCEEDED = "RETRY_LIMIT_EXCEEDED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


ERROR_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.FILE_NOT_FOUND: ErrorCategory.VALIDATION,
    ErrorCode.FILE_SIZE_UNKNOWN: ErrorCategory.VALIDATION,
    ErrorCode.FILE_TOO_LARGE: ErrorCategory.VALIDATION,
    ErrorCode.UNSUPPORTED_FORMAT: ErrorCategory.VALIDATION,
    ErrorCode.OPTIMIZATION_FAILED: ErrorCategory.VALIDATION,
    ErrorCode.NETWORK_ERROR: ErrorCategory.NETWORK,
    ErrorCode.API_ERROR: ErrorCategory.NETWORK,
    ErrorCode.TIMEOUT: ErrorCategory.TIMEOUT,
    ErrorCode.CANCELLED: ErrorCategory.CANCELLED,
    ErrorCode.PROCESSING_FAILED: ErrorCategory.PROCESSING_FAILED,
    ErrorCode.NO_RESULT: ErrorCategory.PROCESSING_FAILED,
    ErrorCode.CLASSIFICATION_FAILED: ErrorCategory.CLASSIFICATION_FAILED,
    ErrorCode.RESULT_TRANSFORMATION_FAILED: ErrorCategory.CLASSIFICATION_FAILED,
    ErrorCode.ALREADY_PROCESSING: ErrorCategory.ALREADY_PROCESSING,
    ErrorCode.RETRY_LIMIT_EXCEEDED: ErrorCategory.PROCESSING_FAILED,
    ErrorCode.UNKNOWN_ERROR: ErrorCategory.UNKNOWN,
}

USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.FILE_NOT_FOUND: "The captured image could not be found. Please capture it again.",
    ErrorCode.FILE_SIZE_UNKNOWN: "The captured image could not be read. Please capture it again.",
    ErrorCode.FILE_TOO_LARGE: "The image is too large. Please capture a smaller image.",
    ErrorCode.UNSUPPORTED_FORMAT: "This image format is not supported. Use a JPEG or PNG image.",
    ErrorCode.OPTIMIZATION_FAILED: "The image could not be prepared for processing.",
    ErrorCode.NETWORK_ERROR: "Network connection problem. Please check your connection and retry.",
    ErrorCode.API_ERROR: "The processing service returned an error. Please retry.",
    ErrorCode.TIMEOUT: "Processing is taking longer than expected. Please retry.",
    ErrorCode.CANCELLED: "",
    ErrorCode.PROCESSING_FAILED: "Failed to process image. Please try again.",
    ErrorCode.NO_RESULT: "Processing finished without a result. Please try again.",
    ErrorCode.CLASSIFICATION_FAILED: "The receipt could not be classified. Please try again.",
    ErrorCode.RESULT_TRANSFORMATION_FAILED: "The processing result could not be read.",
    ErrorCode.ALREADY_PROCESSING: "An image is already being processed.",
    ErrorCode.RETRY_LIMIT_EXCEEDED: "Processing failed too many times. Please start over.",
    ErrorCode.UNKNOWN_ERROR: "Something went wrong. Please start over.",
}


def coerce_error_code(code: str | ErrorCode) -> ErrorCode:
    """Return the enum member for ``code``; unknown backend codes map to API_ERROR."""
    if isinstance(code, ErrorCode):
        return code
    try:
        return ErrorCode(code)
    except ValueError:
        return ErrorCode.API_ERROR


def category_for(code: str | ErrorCode) -> ErrorCategory:
    """Return the taxonomy category of an error code."""
    return ERROR_CATEGORIES[coerce_error_code(code)]


def user_message_for(code: str | ErrorCode) -> str:
    """Return the user-facing message for an error code."""
    return USER_MESSAGES[coerce_error_code(code)]


class CaptureFlowError(Exception):
    """Base class for all package errors."""


class RemoteServiceError(CaptureFlowError):
    """Raised by remote OCR clients for failed or cancelled requests."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.retryable = retryable
        self.context = dict(context or {})


class PipelineError(CaptureFlowError):
    """Normalized failure raised by the pipeline engine."""

    def __init__(
        self,
        code: str | ErrorCode,
        message: str,
        *,
        stage: str,
        retryable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = coerce_error_code(code)
        self.raw_code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.stage = stage
        self.retryable = retryable
        self.context = dict(context or {})

    @property
    def category(self) -> ErrorCategory:
        return category_for(self.code)

    @property
    def is_cancellation(self) -> bool:
        return self.code == ErrorCode.CANCELLED

    def to_record(self, *, timestamp: datetime | None = None) -> ProcessingError:
        """Return the serializable error record for this failure."""
        return ProcessingError(
            code=self.raw_code,
            message=self.message,
            user_message=user_message_for(self.code),
            retryable=self.retryable,
            stage=self.stage,
            timestamp=timestamp or datetime.now(UTC),
            context=self.context,
        )

    def __repr__(self) -> str:
        return (
            f"PipelineError(code={self.raw_code!r}, stage={self.stage!r}, "
            f"retryable={self.retryable})"
        )


class FlowNavigationError(CaptureFlowError):
    """Raised when a flow step change is rejected by the navigation guard."""


class FlowStateError(CaptureFlowError):
    """Raised when a flow operation is invalid for the current flow state."""


class DraftError(CaptureFlowError):
    """Raised for invalid draft editor operations."""


def cancelled_error(stage: str) -> PipelineError:
    """Return the canonical cancellation failure for ``stage``."""
    return PipelineError(
        ErrorCode.CANCELLED,
        "Operation cancelled by user",
        stage=stage,
        retryable=False,
    )


def normalize_exception(exc: BaseException, *, stage: str) -> PipelineError:
    """Normalize any failure to a ``PipelineError``."""
    if isinstance(exc, PipelineError):
        return exc
    if isinstance(exc, RemoteServiceError):
        context = dict(exc.context)
        if exc.status_code is not None:
            context.setdefault("status_code", exc.status_code)
        return PipelineError(
            exc.code,
            exc.message,
            stage=stage,
            retryable=exc.retryable,
            context=context,
        )
    return PipelineError(
        ErrorCode.UNKNOWN_ERROR,
        str(exc) or exc.__class__.__name__,
        stage=stage,
        retryable=False,
        context={"exception_type": exc.__class__.__name__},
    )
