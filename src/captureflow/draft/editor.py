"""Draft editor: mutable, undoable working copy of a processing result."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from pydantic import ValidationError

from captureflow.clock import Clock, SystemClock
from captureflow.constants import DEFAULT_HISTORY_LIMIT
from captureflow.draft.factory import create_draft_from_result, finalize_record
from captureflow.draft.history import DraftHistory
from captureflow.errors import DraftError
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
from captureflow.schemas.enums import ValidationSeverity
from captureflow.schemas.result_models import ProcessingResult

LOGGER = logging.getLogger(__name__)


class DraftEditor:
    """Tracks edits, validation results, history and the save lifecycle.

    Validation results are supplied by the caller and stored verbatim.
    A failed save never discards pending edits.
    """

    def __init__(
        self,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Clock | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._history = DraftHistory(history_limit)
        self._reset_state()

    def _reset_state(self) -> None:
        self._history.clear()
        self._original_result: ProcessingResult | None = None
        self._original_draft: ReceiptRecord | None = None
        self._saved_draft: ReceiptRecord | None = None
        self._modified_fields: set[str] = set()
        self._field_errors: dict[str, list[FieldValidationError]] = {}
        self._is_valid = True
        self._is_dirty = False
        self._is_saving = False
        self._save_error: str | None = None
        self._last_saved_timestamp: datetime | None = None

    @property
    def is_initialized(self) -> bool:
        return self._original_result is not None

    @property
    def draft(self) -> ReceiptRecord | None:
        return self._history.current

    @property
    def original_result(self) -> ProcessingResult | None:
        return self._original_result

    @property
    def modified_fields(self) -> frozenset[str]:
        return frozenset(self._modified_fields)

    @property
    def field_errors(self) -> dict[str, list[FieldValidationError]]:
        return {field: list(errors) for field, errors in self._field_errors.items()}

    @property
    def is_valid(self) -> bool:
        return self._is_valid

    @property
    def is_dirty(self) -> bool:
        return self._is_dirty

    @property
    def is_saving(self) -> bool:
        return self._is_saving

    @property
    def save_error_message(self) -> str | None:
        return self._save_error

    @property
    def last_saved_timestamp(self) -> datetime | None:
        return self._last_saved_timestamp

    @property
    def history_index(self) -> int:
        return self._history.index

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    def state(self) -> DraftState:
        return DraftState(
            is_initialized=self.is_initialized,
            draft=self.draft,
            modified_fields=sorted(self._modified_fields),
            field_errors=self.field_errors,
            is_valid=self._is_valid,
            is_dirty=self._is_dirty,
            is_saving=self._is_saving,
            save_error=self._save_error,
            last_saved_timestamp=self._last_saved_timestamp,
            history_index=self._history.index,
            history_length=len(self._history),
            can_undo=self.can_undo,
            can_redo=self.can_redo,
        )

    def initialize_draft(self, result: ProcessingResult) -> ReceiptRecord:
        """Start editing ``result``; any previous draft is discarded."""
        draft = create_draft_from_result(result, now=self._clock.now())
        self._reset_state()
        self._original_result = result
        self._original_draft = draft
        self._saved_draft = draft
        self._history.reset(draft)
        return draft

    def update_field(self, field: str, value: Any) -> ReceiptRecord:
        return self.update_multiple_fields({field: value})

    def update_multiple_fields(self, updates: Mapping[str, Any]) -> ReceiptRecord:
        """Apply ``updates`` as one history entry.

        Values equal to the current ones are not recorded as changes.
        """
        current = self._require_draft()
        for field in updates:
            if field not in EDITABLE_FIELDS:
                raise DraftError(f"Field is not editable: {field}")
        values = current.model_dump()
        changed = {
            field: value for field, value in updates.items() if values[field] != value
        }
        if not changed:
            return current
        try:
            updated = ReceiptRecord.model_validate({**values, **changed})
        except ValidationError as exc:
            raise DraftError(f"Invalid value for {', '.join(changed)}: {exc}") from exc

        self._history.push(updated)
        self._modified_fields.update(changed)
        for field in changed:
            self._field_errors.pop(field, None)
        self._is_valid = not self._has_blocking_errors()
        self._is_dirty = True
        return updated

    def validate_field(self, field: str, result: FieldValidationResult) -> None:
        self._require_draft()
        if result.errors:
            self._field_errors[field] = list(result.errors)
        else:
            self._field_errors.pop(field, None)
        self._is_valid = not self._has_blocking_errors()

    def validate_form(self, result: FormValidationResult) -> None:
        self._require_draft()
        self._field_errors = {
            field: list(errors) for field, errors in result.field_errors.items() if errors
        }
        self._is_valid = result.is_valid

    def clear_field_error(self, field: str) -> None:
        if self._field_errors.pop(field, None) is not None:
            self._is_valid = not self._has_blocking_errors()

    def undo(self) -> ReceiptRecord | None:
        draft = self._history.undo()
        if draft is not None:
            self._is_dirty = draft != self._saved_draft
        return draft

    def redo(self) -> ReceiptRecord | None:
        draft = self._history.redo()
        if draft is not None:
            self._is_dirty = draft != self._saved_draft
        return draft

    def start_save(self) -> ReceiptRecord:
        draft = self._require_draft()
        if self._is_saving:
            raise DraftError("A save is already in progress")
        self._is_saving = True
        self._save_error = None
        return draft

    def save_success(self) -> None:
        if not self._is_saving:
            raise DraftError("No save in progress")
        self._is_saving = False
        self._is_dirty = False
        self._modified_fields.clear()
        self._saved_draft = self.draft
        self._last_saved_timestamp = self._clock.now()

    def save_error(self, message: str) -> None:
        if not self._is_saving:
            raise DraftError("No save in progress")
        self._is_saving = False
        self._save_error = message
        LOGGER.info("Draft save failed; keeping %s pending edit(s)", len(self._modified_fields))

    def reset_to_original(self) -> ReceiptRecord:
        """Rebuild the draft from the stored processing result."""
        if self._original_result is None:
            raise DraftError("Draft is not initialized")
        return self.initialize_draft(self._original_result)

    def clear_draft(self) -> None:
        self._reset_state()

    def differences(self) -> DraftComparison:
        """Compare the current draft with the draft it started from."""
        current = self._require_draft()
        if self._original_draft is None:
            raise DraftError("Draft has no initial snapshot")
        original = self._original_draft.model_dump(mode="json")
        latest = current.model_dump(mode="json")
        differences = [
            FieldDifference(
                field=field,
                original_value=original[field],
                current_value=latest[field],
                has_changed=original[field] != latest[field],
            )
            for field in original
        ]
        return DraftComparison(
            has_changes=any(item.has_changed for item in differences),
            changed_fields=[item.field for item in differences if item.has_changed],
            differences=differences,
        )

    def final_record(self, record_id: str | None = None) -> ReceiptRecord:
        return finalize_record(
            self._require_draft(), now=self._clock.now(), record_id=record_id
        )

    def _require_draft(self) -> ReceiptRecord:
        draft = self._history.current
        if draft is None:
            raise DraftError("Draft is not initialized")
        return draft

    def _has_blocking_errors(self) -> bool:
        return any(
            error.severity == ValidationSeverity.ERROR
            for errors in self._field_errors.values()
            for error in errors
        )
