"""Conversion of backend job results into processing results."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import ValidationError

from captureflow.errors import ErrorCode, PipelineError
from captureflow.schemas.enums import PipelineStage, ReceiptCategory
from captureflow.schemas.result_models import (
    Classification,
    OptimizationMetrics,
    ProcessingResult,
)


def mean_confidence(value: Any) -> float:
    """Collapse a scalar or per-field confidence mapping into one 0..1 score."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return min(max(float(value), 0.0), 1.0)
    if isinstance(value, dict):
        scores = [
            float(item)
            for item in value.values()
            if isinstance(item, (int, float)) and not isinstance(item, bool)
        ]
        if scores:
            return min(max(sum(scores) / len(scores), 0.0), 1.0)
    return 0.0


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def transform_backend_result(
    payload: dict[str, Any],
    *,
    image_ref: str,
    original_image_ref: str,
    metrics: OptimizationMetrics,
    now: datetime,
) -> ProcessingResult:
    """Build the canonical result, defaulting every missing classification field."""
    try:
        raw = payload.get("classification") or {}
        if not isinstance(raw, dict):
            raise TypeError("classification must be an object")
        classification = Classification(
            date=_text(raw.get("date"), now.date().isoformat()),
            category=raw.get("category") or raw.get("type") or ReceiptCategory.OTHER,
            amount=_text(raw.get("amount"), "0.00"),
            vehicle=_text(raw.get("vehicle")),
            vendor_name=_text(raw.get("vendorName", raw.get("vendor_name"))),
            location=_text(raw.get("location")),
            confidence=mean_confidence(raw.get("confidence")),
        )
        return ProcessingResult(
            image_ref=image_ref,
            original_image_ref=original_image_ref,
            extracted_text=_text(payload.get("extractedText", payload.get("text"))),
            classification=classification,
            optimization_metrics=metrics,
            processed_at=now,
            confidence=mean_confidence(payload.get("confidence")),
        )
    except (TypeError, ValueError, ValidationError) as exc:
        raise PipelineError(
            ErrorCode.RESULT_TRANSFORMATION_FAILED,
            f"Failed to transform backend result: {exc}",
            stage=PipelineStage.FINALIZING.value,
            retryable=False,
            context={"keys": sorted(payload)},
        ) from exc
