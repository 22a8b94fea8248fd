"""Draft editing exports."""

from captureflow.draft.editor import DraftEditor
from captureflow.draft.factory import create_draft_from_result, finalize_record
from captureflow.draft.history import DraftHistory
from captureflow.draft.validation import ReceiptValidator

__all__ = [
    "DraftEditor",
    "DraftHistory",
    "ReceiptValidator",
    "create_draft_from_result",
    "finalize_record",
]
