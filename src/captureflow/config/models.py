"""Pydantic models for central YAML configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator, model_validator

from captureflow.constants import (
    COMPLETE_FLOW_RETENTION_HOURS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MAX_FLOWS,
    DEFAULT_MAX_RETRIES,
    INCOMPLETE_FLOW_RETENTION_HOURS,
    SCHEMA_VERSION,
)
from captureflow.schemas.base import StrictSchemaModel

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png")


class PipelineConfig(StrictSchemaModel):
    """Controls for the staged image pipeline."""

    max_file_size_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    supported_formats: list[str] = Field(
        default_factory=lambda: list(SUPPORTED_MIME_TYPES)
    )
    optimization_enabled: bool = True
    max_dimension: int = Field(default=2048, ge=256)
    jpeg_quality: int = Field(default=85, ge=30, le=95)
    work_dir: Path = Path(".captureflow-work")
    chunk_size_bytes: int = Field(default=512 * 1024, gt=0)
    poll_interval_seconds: float = Field(default=1.0, gt=0.0)
    poll_timeout_seconds: float = Field(default=60.0, gt=0.0)

    @field_validator("supported_formats")
    @classmethod
    def normalize_formats(cls, value: list[str]) -> list[str]:
        formats = [item.strip().lower() for item in value if item.strip()]
        if not formats:
            raise ValueError("supported_formats must not be empty")
        return formats

    @model_validator(mode="after")
    def validate_polling(self) -> "PipelineConfig":
        if self.poll_interval_seconds > self.poll_timeout_seconds:
            raise ValueError("poll_interval_seconds cannot exceed poll_timeout_seconds")
        return self


class RemoteServiceConfig(StrictSchemaModel):
    """Remote OCR service endpoint settings."""

    base_url: str = Field(default="http://localhost:3000", min_length=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    chunk_retries: int = Field(default=2, ge=0, le=10)

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class RetryConfig(StrictSchemaModel):
    """Retry controls for remote service requests."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_seconds: float = Field(default=1.0, ge=0.0)
    max_backoff_seconds: float = Field(default=10.0, ge=0.0)
    jitter_seconds: float = Field(default=0.2, ge=0.0, le=5.0)


class AttemptConfig(StrictSchemaModel):
    """Per-attempt retry budget."""

    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, le=10)


class RetentionConfig(StrictSchemaModel):
    """Flow history retention policy."""

    max_flows: int = Field(default=DEFAULT_MAX_FLOWS, ge=1)
    complete_retention_hours: float = Field(default=COMPLETE_FLOW_RETENTION_HOURS, gt=0)
    incomplete_retention_hours: float = Field(
        default=INCOMPLETE_FLOW_RETENTION_HOURS, gt=0
    )

    @model_validator(mode="after")
    def validate_windows(self) -> "RetentionConfig":
        if self.incomplete_retention_hours > self.complete_retention_hours:
            raise ValueError(
                "incomplete_retention_hours cannot exceed complete_retention_hours"
            )
        return self


class DraftValidationConfig(StrictSchemaModel):
    """Validation policy applied to receipt drafts."""

    required_fields: list[str] = Field(
        default_factory=lambda: ["date", "category", "amount", "vehicle"]
    )
    amount_minimum: float = 0.01
    amount_maximum: float = 999_999.99
    date_range_months: int = Field(default=12, ge=1)
    vehicle_patterns: list[str] = Field(default_factory=list)
    vendor_name_max_length: int = Field(default=100, gt=0)
    location_max_length: int = Field(default=100, gt=0)

    @model_validator(mode="after")
    def validate_amount_range(self) -> "DraftValidationConfig":
        if self.amount_minimum > self.amount_maximum:
            raise ValueError("amount_minimum cannot exceed amount_maximum")
        return self


class DraftConfig(StrictSchemaModel):
    """Draft editor settings."""

    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1, le=200)
    validation: DraftValidationConfig = Field(default_factory=DraftValidationConfig)


class PersistenceConfig(StrictSchemaModel):
    """Durable storage locations."""

    db_path: Path = Path(".sqlite/captureflow.db")
    record_transitions: bool = True


class AppConfig(StrictSchemaModel):
    """Central application configuration."""

    schema_version: str = Field(default=SCHEMA_VERSION, min_length=1)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    remote: RemoteServiceConfig = Field(default_factory=RemoteServiceConfig)
    retries: RetryConfig = Field(default_factory=RetryConfig)
    attempt: AttemptConfig = Field(default_factory=AttemptConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    draft: DraftConfig = Field(default_factory=DraftConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
