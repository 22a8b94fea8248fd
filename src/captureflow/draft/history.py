"""Bounded undo/redo history of draft snapshots."""

from __future__ import annotations

from captureflow.constants import DEFAULT_HISTORY_LIMIT
from captureflow.schemas.draft_models import ReceiptRecord


class DraftHistory:
    """Fixed-capacity list of snapshots with a cursor.

    Pushing discards entries after the cursor; overflow drops the oldest
    entry. While non-empty the cursor always points at a valid entry.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_LIMIT) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: list[ReceiptRecord] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> ReceiptRecord | None:
        if self._index < 0:
            return None
        return self._entries[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return 0 <= self._index < len(self._entries) - 1

    def reset(self, initial: ReceiptRecord) -> None:
        self._entries = [initial]
        self._index = 0

    def clear(self) -> None:
        self._entries = []
        self._index = -1

    def push(self, record: ReceiptRecord) -> None:
        del self._entries[self._index + 1 :]
        self._entries.append(record)
        if len(self._entries) > self.capacity:
            del self._entries[0]
        self._index = len(self._entries) - 1

    def undo(self) -> ReceiptRecord | None:
        if not self.can_undo:
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> ReceiptRecord | None:
        if not self.can_redo:
            return None
        self._index += 1
        return self._entries[self._index]
