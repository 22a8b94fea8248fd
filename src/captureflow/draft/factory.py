"""Draft construction and final-record normalization."""

from __future__ import annotations

import secrets
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from captureflow.clock import epoch_millis
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import ReceiptStatus, normalize_category
from captureflow.schemas.result_models import ProcessingResult


def parse_day(value: Any) -> date | None:
    """Parse an ISO date or datetime string into a calendar day."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01")))


def normalize_date(value: Any, *, today: date) -> str:
    day = parse_day(value)
    return (day or today).isoformat()


def normalize_amount(value: Any, *, clamp_negative: bool = True) -> str:
    amount = parse_amount(value)
    if amount is None:
        return "0.00"
    if clamp_negative and amount < 0:
        amount = Decimal(0)
    return format_amount(amount)


def new_record_id(now: datetime) -> str:
    return f"receipt_{epoch_millis(now)}_{secrets.token_hex(5)[:9]}"


def create_draft_from_result(result: ProcessingResult, *, now: datetime) -> ReceiptRecord:
    """Build the first draft of a processing result with defaults applied."""
    classification = result.classification
    return ReceiptRecord(
        id="",
        date=normalize_date(classification.date, today=now.date()),
        category=normalize_category(classification.category).value,
        amount=normalize_amount(classification.amount),
        vehicle=classification.vehicle or "",
        status=ReceiptStatus.PENDING,
        extracted_text=result.extracted_text,
        image_ref=result.image_ref,
        vendor_name=classification.vendor_name or "",
        location=classification.location or "",
        timestamp=now.isoformat(),
    )


def finalize_record(
    draft: ReceiptRecord,
    *,
    now: datetime,
    record_id: str | None = None,
) -> ReceiptRecord:
    """Return the record as it is persisted: id, timestamp and trimmed values."""
    return draft.model_copy(
        update={
            "id": record_id or draft.id or new_record_id(now),
            "timestamp": now.isoformat(),
            "amount": normalize_amount(draft.amount, clamp_negative=False),
            "date": normalize_date(draft.date, today=now.date()),
            "vendor_name": draft.vendor_name.strip(),
            "location": draft.location.strip(),
        }
    )
