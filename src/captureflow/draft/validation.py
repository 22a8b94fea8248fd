"""Receipt draft validation policy.

The draft editor stores whatever this validator returns; the rules live
here so that they can be configured or swapped without touching the editor.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable

from captureflow.clock import Clock, SystemClock
from captureflow.config.models import DraftValidationConfig
from captureflow.draft.factory import parse_amount, parse_day
from captureflow.schemas.draft_models import (
    FieldValidationError,
    FieldValidationResult,
    FormValidationResult,
    ReceiptRecord,
)
from captureflow.schemas.enums import ReceiptCategory, ReceiptStatus, ValidationSeverity

REQUIRED_FIELD = "REQUIRED_FIELD"
INVALID_FORMAT = "INVALID_FORMAT"
INVALID_RANGE = "INVALID_RANGE"
INVALID_DATE = "INVALID_DATE"
INVALID_AMOUNT = "INVALID_AMOUNT"
INVALID_CATEGORY = "INVALID_CATEGORY"
INVALID_STATUS = "INVALID_STATUS"
INVALID_LENGTH = "INVALID_LENGTH"
BUSINESS_RULE = "BUSINESS_RULE"

FUEL_WARNING_THRESHOLD = 1000
MAINTENANCE_WARNING_THRESHOLD = 5000
DATE_DRIFT_WARNING_DAYS = 30

_ISO_DAY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_Errors = list[FieldValidationError]


def _error(code: str, message: str) -> FieldValidationError:
    return FieldValidationError(code=code, message=message, severity=ValidationSeverity.ERROR)


def _warning(code: str, message: str) -> FieldValidationError:
    return FieldValidationError(
        code=code, message=message, severity=ValidationSeverity.WARNING
    )


def shift_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class ReceiptValidator:
    """Field, cross-field and business-rule checks for receipt drafts."""

    def __init__(
        self,
        config: DraftValidationConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or DraftValidationConfig()
        self._clock = clock or SystemClock()
        self._vehicle_patterns = [re.compile(item) for item in self.config.vehicle_patterns]
        self._field_rules: dict[str, Callable[[Any, _Errors], None]] = {
            "date": self._check_date,
            "category": self._check_category,
            "amount": self._check_amount,
            "vehicle": self._check_vehicle,
            "status": self._check_status,
            "vendor_name": self._check_vendor_name,
            "location": self._check_location,
            "extracted_text": lambda value, errors: None,
            "image_ref": self._check_image_ref,
            "timestamp": self._check_timestamp,
            "id": lambda value, errors: None,
        }

    def validate_field(
        self,
        field: str,
        value: Any,
        draft: ReceiptRecord | None = None,
    ) -> FieldValidationResult:
        errors: _Errors = []
        rule = self._field_rules.get(field)
        if rule is None:
            errors.append(_error(INVALID_FORMAT, f"Unknown field: {field}"))
        else:
            rule(value, errors)
        if draft is not None and not errors:
            self._check_cross_field(field, value, draft, errors)
        return FieldValidationResult(
            is_valid=not any(e.severity == ValidationSeverity.ERROR for e in errors),
            errors=errors,
        )

    def validate_receipt(self, draft: ReceiptRecord) -> FormValidationResult:
        field_errors: dict[str, _Errors] = {}
        values = draft.model_dump(mode="json")
        for field in self._field_rules:
            result = self.validate_field(field, values[field], draft)
            if result.errors:
                field_errors[field] = list(result.errors)
        self._check_business_rules(draft, field_errors)

        all_errors = [item for errors in field_errors.values() for item in errors]
        has_errors = any(e.severity == ValidationSeverity.ERROR for e in all_errors)
        has_warnings = any(e.severity == ValidationSeverity.WARNING for e in all_errors)
        return FormValidationResult(
            is_valid=not has_errors,
            field_errors=field_errors,
            has_errors=has_errors,
            has_warnings=has_warnings,
        )

    def _required(self, field: str, label: str, errors: _Errors) -> None:
        if field in self.config.required_fields:
            errors.append(_error(REQUIRED_FIELD, f"{label} is required"))

    def _check_date(self, value: Any, errors: _Errors) -> None:
        if not value:
            self._required("date", "Date", errors)
            return
        if not isinstance(value, str) or not _ISO_DAY.match(value):
            errors.append(_error(INVALID_FORMAT, "Date must be in YYYY-MM-DD format"))
            return
        day = parse_day(value)
        if day is None:
            errors.append(_error(INVALID_DATE, "Invalid date"))
            return
        today = self._clock.now().date()
        months = self.config.date_range_months
        if day < shift_months(today, -months) or day > shift_months(today, months):
            errors.append(
                _warning(INVALID_RANGE, f"Date must be within {months} months of today")
            )

    def _check_category(self, value: Any, errors: _Errors) -> None:
        if not value:
            self._required("category", "Category", errors)
            return
        allowed = [item.value for item in ReceiptCategory]
        if value not in allowed:
            errors.append(
                _error(INVALID_CATEGORY, f"Category must be one of: {', '.join(allowed)}")
            )

    def _check_amount(self, value: Any, errors: _Errors) -> None:
        if not value:
            self._required("amount", "Amount", errors)
            return
        amount = parse_amount(value)
        if amount is None:
            errors.append(_error(INVALID_AMOUNT, "Amount must be a valid number"))
            return
        if amount < Decimal(str(self.config.amount_minimum)):
            errors.append(
                _error(INVALID_RANGE, f"Amount must be at least {self.config.amount_minimum}")
            )
        if amount > Decimal(str(self.config.amount_maximum)):
            errors.append(
                _error(INVALID_RANGE, f"Amount cannot exceed {self.config.amount_maximum}")
            )

    def _check_vehicle(self, value: Any, errors: _Errors) -> None:
        if not value:
            self._required("vehicle", "Vehicle", errors)
            return
        if self._vehicle_patterns and not any(
            pattern.search(value) for pattern in self._vehicle_patterns
        ):
            errors.append(_warning(INVALID_FORMAT, "Vehicle format is not recognized"))

    def _check_status(self, value: Any, errors: _Errors) -> None:
        allowed = [item.value for item in ReceiptStatus]
        if value and value not in allowed:
            errors.append(
                _error(INVALID_STATUS, f"Status must be one of: {', '.join(allowed)}")
            )

    def _check_vendor_name(self, value: Any, errors: _Errors) -> None:
        limit = self.config.vendor_name_max_length
        if value and len(value) > limit:
            errors.append(
                _error(INVALID_LENGTH, f"Vendor name cannot exceed {limit} characters")
            )

    def _check_location(self, value: Any, errors: _Errors) -> None:
        limit = self.config.location_max_length
        if value and len(value) > limit:
            errors.append(
                _error(INVALID_LENGTH, f"Location cannot exceed {limit} characters")
            )

    def _check_image_ref(self, value: Any, errors: _Errors) -> None:
        if not value:
            errors.append(_error(REQUIRED_FIELD, "Image is required"))

    def _check_timestamp(self, value: Any, errors: _Errors) -> None:
        if not value:
            return
        try:
            datetime.fromisoformat(value)
        except (TypeError, ValueError):
            errors.append(_error(INVALID_FORMAT, "Invalid timestamp format"))

    def _check_cross_field(
        self,
        field: str,
        value: Any,
        draft: ReceiptRecord,
        errors: _Errors,
    ) -> None:
        if field == "amount" and draft.category == ReceiptCategory.FUEL.value:
            amount = parse_amount(value)
            if amount is not None and amount > FUEL_WARNING_THRESHOLD:
                errors.append(
                    _warning(
                        BUSINESS_RULE,
                        f"Fuel expense over {FUEL_WARNING_THRESHOLD} seems unusually high",
                    )
                )
        if field == "date" and draft.timestamp:
            day = parse_day(value)
            uploaded = parse_day(draft.timestamp)
            if (
                day is not None
                and uploaded is not None
                and abs((day - uploaded).days) > DATE_DRIFT_WARNING_DAYS
            ):
                errors.append(
                    _warning(
                        BUSINESS_RULE,
                        "Receipt date differs significantly from upload date",
                    )
                )

    def _check_business_rules(
        self, draft: ReceiptRecord, field_errors: dict[str, _Errors]
    ) -> None:
        if draft.category == ReceiptCategory.MAINTENANCE.value:
            amount = parse_amount(draft.amount)
            if amount is not None and amount > MAINTENANCE_WARNING_THRESHOLD:
                field_errors.setdefault("amount", []).append(
                    _warning(
                        BUSINESS_RULE,
                        f"Maintenance expense over {MAINTENANCE_WARNING_THRESHOLD} "
                        "requires additional verification",
                    )
                )
        day = parse_day(draft.date)
        if day is not None and day > self._clock.now().date():
            field_errors.setdefault("date", []).append(
                _warning(BUSINESS_RULE, "Future dated receipts require verification")
            )
