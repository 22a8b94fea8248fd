"""Aggregate attempt progress as a pure function of state."""

from __future__ import annotations

from typing import assert_never

from captureflow.attempt.states import (
    AttemptState,
    Capturing,
    Classifying,
    Complete,
    Editing,
    ErrorState,
    Extracting,
    Idle,
    Optimizing,
    Processing,
    Reviewing,
    Saving,
    Uploading,
)

# (start, end) of each pipeline state on the 0..100 attempt scale.
ATTEMPT_BANDS: dict[str, tuple[float, float]] = {
    "optimizing": (0.0, 20.0),
    "uploading": (20.0, 50.0),
    "processing": (50.0, 65.0),
    "extracting": (65.0, 80.0),
    "classifying": (80.0, 100.0),
}


def _in_band(status: str, fraction: float) -> float:
    low, high = ATTEMPT_BANDS[status]
    return low + (high - low) * fraction


def attempt_progress(state: AttemptState) -> float:
    """Return overall attempt progress (0..100) for ``state``."""
    if isinstance(state, (Idle, Capturing)):
        return 0.0
    if isinstance(state, (Optimizing, Uploading, Processing, Extracting, Classifying)):
        return _in_band(state.status, state.progress)
    if isinstance(state, (Reviewing, Editing, Saving, Complete)):
        return 100.0
    if isinstance(state, ErrorState):
        return attempt_progress(state.previous_state)
    assert_never(state)
