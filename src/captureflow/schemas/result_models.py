"""Processing result contracts produced by the pipeline engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from captureflow.schemas.base import FrozenSchemaModel
from captureflow.schemas.enums import ReceiptCategory, normalize_category


class Dimensions(FrozenSchemaModel):
    """Pixel dimensions of an image."""

    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)


class OptimizationMetrics(FrozenSchemaModel):
    """Before/after measurements of the image optimization stage."""

    original_size: int = Field(ge=0)
    optimized_size: int = Field(ge=0)
    original_dimensions: Dimensions = Field(default_factory=Dimensions)
    optimized_dimensions: Dimensions = Field(default_factory=Dimensions)
    reduction_percentage: float = 0.0
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    format: str | None = None


class Classification(FrozenSchemaModel):
    """Structured fields the remote classifier extracted from the receipt."""

    date: str
    category: ReceiptCategory = ReceiptCategory.OTHER
    amount: str = "0.00"
    vehicle: str = ""
    vendor_name: str = ""
    location: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category_label(cls, value: Any) -> ReceiptCategory:
        return normalize_category(value)


class ProcessingResult(FrozenSchemaModel):
    """Immutable output of one successful pipeline run."""

    image_ref: str = Field(min_length=1)
    original_image_ref: str = Field(min_length=1)
    extracted_text: str = ""
    classification: Classification
    optimization_metrics: OptimizationMetrics
    processed_at: datetime
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ProcessingError(FrozenSchemaModel):
    """Uniform error shape that crosses component boundaries."""

    code: str = Field(min_length=1)
    message: str
    user_message: str = ""
    retryable: bool = False
    stage: str | None = None
    timestamp: datetime
    context: dict[str, Any] = Field(default_factory=dict)
