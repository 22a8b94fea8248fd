"""Draft record and validation result contracts."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from captureflow.schemas.base import FrozenSchemaModel
from captureflow.schemas.enums import ReceiptStatus, ValidationSeverity

EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "date",
        "category",
        "amount",
        "vehicle",
        "status",
        "extracted_text",
        "vendor_name",
        "location",
    }
)


class ReceiptRecord(FrozenSchemaModel):
    """Final record shape; the draft editor keeps immutable snapshots of it.

    Field values stay loosely typed strings so that invalid user input can be
    held in the draft and reported by validation instead of being rejected.
    """

    id: str = ""
    date: str = ""
    category: str = "Other"
    amount: str = "0.00"
    vehicle: str = ""
    status: ReceiptStatus = ReceiptStatus.PENDING
    extracted_text: str = ""
    image_ref: str = ""
    vendor_name: str = ""
    location: str = ""
    timestamp: str = ""


class FieldValidationError(FrozenSchemaModel):
    """One validation finding for a draft field."""

    code: str = Field(min_length=1)
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR


class FieldValidationResult(FrozenSchemaModel):
    """Validation outcome for a single field."""

    is_valid: bool
    errors: list[FieldValidationError] = Field(default_factory=list)


class FormValidationResult(FrozenSchemaModel):
    """Validation outcome for a whole draft."""

    is_valid: bool
    field_errors: dict[str, list[FieldValidationError]] = Field(default_factory=dict)
    has_errors: bool = False
    has_warnings: bool = False


class FieldDifference(FrozenSchemaModel):
    """Change of one field between two drafts."""

    field: str
    original_value: str | None
    current_value: str | None
    has_changed: bool


class DraftComparison(FrozenSchemaModel):
    """Summary of the differences between two drafts."""

    has_changes: bool
    changed_fields: list[str] = Field(default_factory=list)
    differences: list[FieldDifference] = Field(default_factory=list)

    @property
    def change_count(self) -> int:
        return len(self.changed_fields)


class DraftState(FrozenSchemaModel):
    """Read-only view of the draft editor."""

    is_initialized: bool = False
    draft: ReceiptRecord | None = None
    modified_fields: list[str] = Field(default_factory=list)
    field_errors: dict[str, list[FieldValidationError]] = Field(default_factory=dict)
    is_valid: bool = True
    is_dirty: bool = False
    is_saving: bool = False
    save_error: str | None = None
    last_saved_timestamp: datetime | None = None
    history_index: int = -1
    history_length: int = 0
    can_undo: bool = False
    can_redo: bool = False
