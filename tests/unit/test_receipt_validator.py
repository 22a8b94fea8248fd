"""Receipt validation policy tests."""

from __future__ import annotations

from datetime import UTC, datetime

from captureflow.config.models import DraftValidationConfig
from captureflow.draft.validation import (
    BUSINESS_RULE,
    INVALID_AMOUNT,
    INVALID_CATEGORY,
    INVALID_FORMAT,
    INVALID_LENGTH,
    INVALID_RANGE,
    REQUIRED_FIELD,
    ReceiptValidator,
    shift_months,
)
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import ValidationSeverity


class _FakeClock:
    def now(self) -> datetime:
        return datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def monotonic(self) -> float:
        return 0.0


def _validator(**config: object) -> ReceiptValidator:
    return ReceiptValidator(DraftValidationConfig(**config), clock=_FakeClock())


def _draft(**updates: object) -> ReceiptRecord:
    values = {
        "date": "2026-02-28",
        "category": "Fuel",
        "amount": "45.20",
        "vehicle": "TRUCK-7",
        "image_ref": "receipt.jpg",
        "timestamp": "2026-03-01T09:00:00+00:00",
    }
    values.update(updates)
    return ReceiptRecord.model_validate(values)


def _codes(result) -> list[str]:  # type: ignore[no-untyped-def]
    return [error.code for error in result.errors]


def test_valid_draft_passes() -> None:
    result = _validator().validate_receipt(_draft())
    assert result.is_valid is True
    assert result.has_errors is False
    assert result.field_errors == {}


def test_required_fields_are_reported() -> None:
    result = _validator().validate_receipt(_draft(vehicle="", amount=""))
    assert result.is_valid is False
    assert [e.code for e in result.field_errors["vehicle"]] == [REQUIRED_FIELD]
    assert [e.code for e in result.field_errors["amount"]] == [REQUIRED_FIELD]


def test_optional_vehicle_when_not_required() -> None:
    validator = _validator(required_fields=["date", "category", "amount"])
    assert validator.validate_field("vehicle", "").is_valid is True


def test_field_rules() -> None:
    validator = _validator()
    assert _codes(validator.validate_field("date", "28/02/2026")) == [INVALID_FORMAT]
    assert _codes(validator.validate_field("amount", "forty")) == [INVALID_AMOUNT]
    assert _codes(validator.validate_field("amount", "0.001")) == [INVALID_RANGE]
    assert _codes(validator.validate_field("amount", "1000000")) == [INVALID_RANGE]
    assert _codes(validator.validate_field("category", "Snacks")) == [INVALID_CATEGORY]
    assert _codes(validator.validate_field("vendor_name", "x" * 101)) == [INVALID_LENGTH]
    assert _codes(validator.validate_field("nonsense", "x")) == [INVALID_FORMAT]


def test_out_of_range_date_is_only_a_warning() -> None:
    result = _validator().validate_field("date", "2024-01-01")
    assert result.is_valid is True
    assert result.errors[0].code == INVALID_RANGE
    assert result.errors[0].severity == ValidationSeverity.WARNING


def test_vehicle_patterns_warn_on_unknown_format() -> None:
    validator = _validator(vehicle_patterns=[r"^[A-Z]+-\d+$"])
    assert validator.validate_field("vehicle", "TRUCK-7").errors == []
    result = validator.validate_field("vehicle", "my truck")
    assert result.is_valid is True
    assert result.errors[0].severity == ValidationSeverity.WARNING


def test_cross_field_and_business_rule_warnings() -> None:
    """High fuel or maintenance amounts warn but do not block saving."""
    validator = _validator()
    fuel = validator.validate_field("amount", "1500.00", _draft())
    assert fuel.is_valid is True
    assert _codes(fuel) == [BUSINESS_RULE]

    maintenance = validator.validate_receipt(
        _draft(category="Maintenance", amount="6000.00")
    )
    assert maintenance.is_valid is True
    assert maintenance.has_warnings is True
    assert maintenance.field_errors["amount"][0].code == BUSINESS_RULE


def test_date_far_from_upload_warns() -> None:
    result = _validator().validate_field("date", "2026-01-02", _draft())
    assert result.is_valid is True
    assert _codes(result) == [BUSINESS_RULE]


def test_shift_months_clamps_to_month_end() -> None:
    assert shift_months(datetime(2026, 3, 31).date(), -1).isoformat() == "2026-02-28"
    assert shift_months(datetime(2026, 1, 15).date(), -12).isoformat() == "2025-01-15"
