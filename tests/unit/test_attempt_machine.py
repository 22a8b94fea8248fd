"""Attempt state machine tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from captureflow.attempt import (
    AttemptSnapshot,
    AttemptStateMachine,
    Cancel,
    ClassifyComplete,
    ClassifyProgress,
    Classifying,
    Complete,
    ConfirmChanges,
    DiscardChanges,
    Editing,
    EnterEdit,
    EnterReview,
    ErrorState,
    ExtractComplete,
    Extracting,
    Fail,
    Idle,
    ImageCaptured,
    OptimizeComplete,
    OptimizeProgress,
    Optimizing,
    ProcessProgress,
    ProcessStarted,
    Processing,
    Reset,
    Retry,
    Reviewing,
    SaveComplete,
    SaveStart,
    Saving,
    StartCapture,
    UpdateField,
    UploadComplete,
    UploadProgress,
    UploadStarted,
    Uploading,
    attempt_progress,
    reduce_attempt,
)
from captureflow.clock import is_valid_correlation_id
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.result_models import (
    Classification,
    OptimizationMetrics,
    ProcessingError,
    ProcessingResult,
)

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class _FakeClock:
    def __init__(self) -> None:
        self.current = NOW

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return 0.0

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def _result() -> ProcessingResult:
    return ProcessingResult(
        image_ref="receipt.jpg",
        original_image_ref="receipt.jpg",
        classification=Classification(date="2026-02-28", category="Fuel", amount="45.20"),
        optimization_metrics=OptimizationMetrics(original_size=10, optimized_size=10),
        processed_at=NOW,
    )


def _error(code: str = "NETWORK_ERROR", *, retryable: bool = True) -> ProcessingError:
    return ProcessingError(
        code=code, message="boom", retryable=retryable, stage="upload", timestamp=NOW
    )


def _machine_in_upload(max_retries: int = 3) -> AttemptStateMachine:
    machine = AttemptStateMachine(max_retries=max_retries, clock=_FakeClock())
    machine.start_capture()
    machine.dispatch(ImageCaptured(image_ref="receipt.jpg"))
    machine.dispatch(OptimizeComplete())
    return machine


def test_happy_path_reaches_complete() -> None:
    """Events in pipeline order walk the attempt to complete."""
    clock = _FakeClock()
    machine = AttemptStateMachine(clock=clock)
    assert isinstance(machine.state, Idle)

    machine.start_capture()
    assert machine.context.correlation_id is not None
    assert is_valid_correlation_id(machine.context.correlation_id)
    assert isinstance(machine.dispatch(ImageCaptured(image_ref="receipt.jpg")), Optimizing)
    clock.advance(2)
    assert isinstance(machine.dispatch(OptimizeComplete()), Uploading)
    machine.dispatch(UploadStarted(upload_id="up-1"))
    assert isinstance(machine.dispatch(UploadComplete()), Processing)
    machine.dispatch(ProcessStarted(job_id="job-1"))
    state = machine.dispatch(ProcessProgress(0.5, stage="extracting"))
    assert isinstance(state, Extracting)
    assert state.job_id == "job-1"
    assert isinstance(machine.dispatch(ExtractComplete(text="SHELL")), Classifying)
    assert isinstance(machine.dispatch(ClassifyComplete(result=_result())), Reviewing)
    assert isinstance(machine.dispatch(SaveStart(record=ReceiptRecord(id="r1"))), Saving)
    done = machine.dispatch(SaveComplete())
    assert isinstance(done, Complete)
    assert done.record.id == "r1"
    assert machine.context.stage_timings["optimizing"] == 2.0


def test_invalid_events_return_the_same_snapshot() -> None:
    """Events that do not apply are ignored by identity."""
    snapshot = AttemptSnapshot()
    assert reduce_attempt(snapshot, UploadComplete(), now=NOW) is snapshot
    assert reduce_attempt(snapshot, OptimizeProgress(0.5), now=NOW) is snapshot
    assert reduce_attempt(snapshot, Retry(), now=NOW) is snapshot
    assert reduce_attempt(snapshot, Cancel(), now=NOW) is snapshot
    assert reduce_attempt(snapshot, Fail(error=_error()), now=NOW) is snapshot


def test_progress_within_a_state_never_decreases() -> None:
    machine = _machine_in_upload()
    machine.dispatch(UploadProgress(0.6))
    machine.dispatch(UploadProgress(0.2))
    machine.dispatch(UploadProgress(1.7))
    state = machine.state
    assert isinstance(state, Uploading)
    assert state.progress == 1.0
    assert machine.progress == 50.0


def test_fail_then_retry_restores_interrupted_state() -> None:
    machine = _machine_in_upload(max_retries=2)
    machine.dispatch(UploadProgress(0.4))
    state = machine.dispatch(Fail(error=_error()))
    assert isinstance(state, ErrorState)
    assert state.can_retry is True
    assert machine.progress == pytest.approx(32.0)

    restored = machine.dispatch(Retry())
    assert isinstance(restored, Uploading)
    assert restored.progress == 0.4
    assert machine.context.retry_count == 1


def test_retry_limit_is_reported_as_its_own_error() -> None:
    """Retrying past the budget yields a non-retryable RETRY_LIMIT_EXCEEDED."""
    machine = _machine_in_upload(max_retries=1)
    machine.dispatch(Fail(error=_error()))
    machine.dispatch(Retry())
    state = machine.dispatch(Fail(error=_error()))
    assert isinstance(state, ErrorState)
    assert state.can_retry is False

    limited = machine.dispatch(Retry())
    assert isinstance(limited, ErrorState)
    assert limited.error.code == "RETRY_LIMIT_EXCEEDED"
    assert limited.error.retryable is False
    assert machine.dispatch(Retry()) is limited


def test_non_retryable_error_cannot_be_retried() -> None:
    machine = _machine_in_upload()
    state = machine.dispatch(Fail(error=_error("FILE_TOO_LARGE", retryable=False)))
    assert isinstance(state, ErrorState)
    assert state.can_retry is False
    assert machine.dispatch(Retry()) is state


def test_errors_never_nest() -> None:
    machine = _machine_in_upload()
    machine.dispatch(Fail(error=_error()))
    state = machine.dispatch(Fail(error=_error("TIMEOUT")))
    assert isinstance(state, ErrorState)
    assert isinstance(state.previous_state, Uploading)
    assert state.error.code == "TIMEOUT"


def test_cancel_is_terminal_for_the_attempt() -> None:
    machine = _machine_in_upload()
    state = machine.dispatch(Cancel())
    assert isinstance(state, ErrorState)
    assert state.error.code == "CANCELLED"
    assert state.can_retry is False
    assert machine.dispatch(Cancel()) is state
    assert machine.dispatch(Retry()) is state


def test_review_edit_confirm_and_discard() -> None:
    machine = AttemptStateMachine(clock=_FakeClock())
    machine.start_capture()
    machine.dispatch(ImageCaptured(image_ref="receipt.jpg"))
    machine.dispatch(OptimizeComplete())
    machine.dispatch(UploadComplete())
    machine.dispatch(ExtractComplete())
    machine.dispatch(ClassifyProgress(0.5))
    machine.dispatch(ClassifyComplete(result=_result()))

    machine.dispatch(EnterEdit())
    editing = machine.dispatch(UpdateField(field="amount", value="46.00"))
    assert isinstance(editing, Editing)
    assert editing.pending_changes == {"amount": "46.00"}
    reviewing = machine.dispatch(ConfirmChanges())
    assert isinstance(reviewing, Reviewing)
    assert reviewing.changes == {"amount": "46.00"}

    machine.dispatch(EnterEdit())
    machine.dispatch(UpdateField(field="vehicle", value="VAN-2"))
    reviewing = machine.dispatch(DiscardChanges())
    assert isinstance(reviewing, Reviewing)
    assert reviewing.changes == {"amount": "46.00"}


def test_enter_review_recovers_from_error_during_review() -> None:
    machine = AttemptStateMachine(clock=_FakeClock())
    machine.start_capture()
    machine.dispatch(ImageCaptured(image_ref="receipt.jpg"))
    machine.dispatch(OptimizeComplete())
    machine.dispatch(UploadComplete())
    machine.dispatch(ExtractComplete())
    machine.dispatch(ClassifyComplete(result=_result()))
    machine.dispatch(Fail(error=_error("UNKNOWN_ERROR", retryable=False)))

    assert isinstance(machine.dispatch(EnterReview()), Reviewing)


def test_reset_keeps_retry_budget_and_clears_context() -> None:
    machine = _machine_in_upload(max_retries=5)
    machine.dispatch(Fail(error=_error()))
    machine.dispatch(Retry())
    state = machine.dispatch(Reset())
    assert isinstance(state, Idle)
    assert machine.context.retry_count == 0
    assert machine.context.max_retries == 5
    assert machine.context.correlation_id is None


def test_start_capture_only_from_idle() -> None:
    machine = _machine_in_upload()
    snapshot = machine.snapshot
    machine.dispatch(StartCapture(correlation_id="1700000000000-abcd1234"))
    assert machine.snapshot is snapshot


def test_listeners_see_changes_only_and_can_unsubscribe() -> None:
    machine = AttemptStateMachine(clock=_FakeClock())
    seen: list[str] = []
    unsubscribe = machine.subscribe(lambda snapshot, _event: seen.append(snapshot.state.status))

    machine.start_capture()
    machine.dispatch(UploadComplete())
    machine.dispatch(ImageCaptured(image_ref="receipt.jpg"))
    unsubscribe()
    machine.dispatch(OptimizeComplete())

    assert seen == ["capturing", "optimizing"]


def test_failing_listener_does_not_block_others() -> None:
    machine = AttemptStateMachine(clock=_FakeClock())
    seen: list[str] = []

    def broken(_snapshot: AttemptSnapshot, _event: object) -> None:
        raise RuntimeError("listener bug")

    machine.subscribe(broken)
    machine.subscribe(lambda snapshot, _event: seen.append(snapshot.state.status))
    machine.start_capture()
    assert seen == ["capturing"]


def test_attempt_progress_bands() -> None:
    assert attempt_progress(Idle()) == 0.0
    assert attempt_progress(Optimizing(image_ref="a", progress=0.5)) == 10.0
    assert attempt_progress(Processing(image_ref="a", progress=1.0)) == 65.0
    assert attempt_progress(Classifying(image_ref="a", progress=0.5)) == 90.0
    assert attempt_progress(Reviewing(result=_result())) == 100.0
