"""Bounded undo/redo history tests."""

from __future__ import annotations

import pytest

from captureflow.draft.history import DraftHistory
from captureflow.schemas.draft_models import ReceiptRecord


def _record(amount: str) -> ReceiptRecord:
    return ReceiptRecord(amount=amount)


def test_push_truncates_redo_tail() -> None:
    history = DraftHistory(capacity=5)
    history.reset(_record("1.00"))
    history.push(_record("2.00"))
    history.push(_record("3.00"))
    history.undo()
    history.undo()
    assert history.can_redo is True

    history.push(_record("9.00"))

    assert history.can_redo is False
    assert [history.current.amount if history.current else None] == ["9.00"]
    assert len(history) == 2


def test_overflow_drops_oldest_entry() -> None:
    """At capacity the oldest snapshot is discarded and the cursor stays valid."""
    history = DraftHistory(capacity=3)
    history.reset(_record("1.00"))
    for amount in ("2.00", "3.00", "4.00"):
        history.push(_record(amount))

    assert len(history) == 3
    assert history.index == 2
    history.undo()
    history.undo()
    assert history.current is not None
    assert history.current.amount == "2.00"
    assert history.undo() is None


def test_empty_history_has_no_cursor() -> None:
    history = DraftHistory()
    assert history.current is None
    assert history.index == -1
    assert history.can_undo is False
    assert history.can_redo is False
    assert history.redo() is None


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        DraftHistory(capacity=0)
