"""Flow orchestrator tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from captureflow.config.models import RetentionConfig
from captureflow.errors import ErrorCode, FlowNavigationError, FlowStateError, PipelineError
from captureflow.flow.orchestrator import FlowOrchestrator
from captureflow.flow.persistence import InMemoryFlowSnapshotStore
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.result_models import (
    Classification,
    OptimizationMetrics,
    ProcessingResult,
)


class _FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
        self.ticks = 0.0

    def now(self) -> datetime:
        return self.current

    def monotonic(self) -> float:
        return self.ticks

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        self.ticks += seconds


def _result(image_ref: str = "receipt.jpg") -> ProcessingResult:
    return ProcessingResult(
        image_ref=image_ref,
        original_image_ref=image_ref,
        extracted_text="SHELL 45.20",
        classification=Classification(date="2026-02-28", category="Fuel", amount="45.20"),
        optimization_metrics=OptimizationMetrics(original_size=100, optimized_size=80),
        processed_at=datetime(2026, 3, 1, tzinfo=UTC),
        confidence=0.9,
    )


def _orchestrator(
    clock: _FakeClock,
    store: InMemoryFlowSnapshotStore | None = None,
    **retention: float,
) -> FlowOrchestrator:
    return FlowOrchestrator(
        config=RetentionConfig(**retention),
        store=store or InMemoryFlowSnapshotStore(),
        clock=clock,
    )


def test_create_flow_starts_at_processing_with_capture_history() -> None:
    """A new flow is recorded at capture and auto-advanced into processing."""
    orchestrator = _orchestrator(_FakeClock())
    flow = orchestrator.create_flow("file:///tmp/receipt.jpg")

    assert orchestrator.active_flow_id == flow.id
    assert flow.current_step == FlowStep.PROCESSING
    assert flow.step_history == [FlowStep.CAPTURE, FlowStep.PROCESSING]
    assert flow.transitions[0].reason == TransitionReason.AUTO_ADVANCE
    assert flow.id.startswith("flow_")


def test_create_flow_rejects_empty_image_ref() -> None:
    orchestrator = _orchestrator(_FakeClock())
    with pytest.raises(FlowStateError):
        orchestrator.create_flow("  ")
    assert orchestrator.has_active_flow is False


def test_create_flow_cancels_previous_active_flow() -> None:
    """At most one flow is active; the previous one is abandoned."""
    clock = _FakeClock()
    orchestrator = _orchestrator(clock)
    first = orchestrator.create_flow("first.jpg")
    clock.advance(5)
    second = orchestrator.create_flow("second.jpg")

    assert orchestrator.active_flow_id == second.id
    previous = orchestrator.get_flow(first.id)
    assert previous is not None
    assert previous.metrics.abandonment_step == FlowStep.PROCESSING
    assert previous.metrics.total_duration == 5.0


def test_advance_step_is_guarded_by_required_data() -> None:
    """Review is unreachable until a processing result is attached."""
    orchestrator = _orchestrator(_FakeClock())
    orchestrator.create_flow("receipt.jpg")

    guard = orchestrator.check_navigation(FlowStep.REVIEW)
    assert guard.allowed is False
    assert guard.suggested_action is not None
    assert guard.suggested_action.target == FlowStep.PROCESSING
    with pytest.raises(FlowNavigationError):
        orchestrator.advance_step(FlowStep.REVIEW)

    orchestrator.attach_result(_result())
    flow = orchestrator.advance_step(FlowStep.REVIEW, TransitionReason.AUTO_ADVANCE)
    assert flow.current_step == FlowStep.REVIEW


def test_step_durations_accumulate_in_seconds() -> None:
    clock = _FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_flow("receipt.jpg")
    orchestrator.attach_result(_result())
    clock.advance(12)
    flow = orchestrator.advance_step(FlowStep.REVIEW)

    assert flow.metrics.step_durations[FlowStep.PROCESSING] == 12.0
    assert flow.metrics.step_durations[FlowStep.CAPTURE] == 0.0


def test_advance_to_current_step_is_a_noop() -> None:
    orchestrator = _orchestrator(_FakeClock())
    orchestrator.create_flow("receipt.jpg")
    flow = orchestrator.advance_step(FlowStep.PROCESSING)
    assert len(flow.transitions) == 1


def test_record_error_tracks_history_and_retry_hint() -> None:
    """Retryable errors should turn the guard's suggestion into a retry."""
    orchestrator = _orchestrator(_FakeClock())
    orchestrator.create_flow("receipt.jpg")
    orchestrator.record_error(
        PipelineError(ErrorCode.TIMEOUT, "poll timed out", stage="processing", retryable=True)
    )

    flow = orchestrator.active_flow
    assert flow is not None
    assert flow.metrics.error_count == 1
    assert flow.last_error is not None
    assert flow.last_error.code == "TIMEOUT"
    assert flow.last_error.step == FlowStep.PROCESSING
    guard = orchestrator.check_navigation(FlowStep.REVIEW)
    assert guard.suggested_action is not None
    assert guard.suggested_action.type == "retry"

    orchestrator.record_retry()
    orchestrator.clear_error()
    flow = orchestrator.active_flow
    assert flow is not None
    assert flow.last_error is None
    assert flow.metrics.retry_count == 1
    assert len(flow.error_history) == 1


def test_record_error_without_active_flow_is_dropped() -> None:
    orchestrator = _orchestrator(_FakeClock())
    orchestrator.record_error(
        PipelineError(ErrorCode.NETWORK_ERROR, "offline", stage="upload", retryable=True)
    )
    assert orchestrator.flows == {}


def test_complete_flow_requires_draft_and_releases_active_slot() -> None:
    clock = _FakeClock()
    orchestrator = _orchestrator(clock)
    orchestrator.create_flow("receipt.jpg")
    orchestrator.attach_result(_result())
    with pytest.raises(FlowStateError):
        orchestrator.complete_flow()

    orchestrator.attach_draft(ReceiptRecord(date="2026-02-28", amount="45.20"))
    clock.advance(30)
    flow = orchestrator.complete_flow()

    assert flow.is_complete is True
    assert flow.current_step == FlowStep.REPORT
    assert flow.metrics.completion_rate == 1
    assert flow.metrics.total_duration == 30.0
    assert orchestrator.has_active_flow is False
    assert orchestrator.get_flow(flow.id) is not None


def test_accessors_return_copies() -> None:
    """Mutating a returned flow must not change orchestrator state."""
    orchestrator = _orchestrator(_FakeClock())
    orchestrator.create_flow("receipt.jpg")
    copy = orchestrator.active_flow
    assert copy is not None
    copy.image_ref = "tampered.jpg"
    active = orchestrator.active_flow
    assert active is not None
    assert active.image_ref == "receipt.jpg"


def test_cleanup_applies_retention_windows() -> None:
    """Incomplete flows expire after one hour, complete ones after a day."""
    clock = _FakeClock()
    orchestrator = _orchestrator(clock)
    abandoned = orchestrator.create_flow("abandoned.jpg")
    orchestrator.cancel_flow()
    orchestrator.create_flow("done.jpg")
    orchestrator.attach_result(_result())
    orchestrator.attach_draft(ReceiptRecord(date="2026-02-28"))
    done = orchestrator.complete_flow()

    clock.advance(2 * 3600)
    evicted = orchestrator.cleanup()
    assert evicted == [abandoned.id]
    assert orchestrator.get_flow(done.id) is not None

    clock.advance(23 * 3600)
    assert orchestrator.cleanup() == [done.id]


def test_cleanup_never_evicts_active_flow() -> None:
    clock = _FakeClock()
    orchestrator = _orchestrator(clock)
    active = orchestrator.create_flow("slow.jpg")
    clock.advance(48 * 3600)
    assert orchestrator.cleanup() == []
    assert orchestrator.active_flow_id == active.id


def test_cleanup_caps_flow_count_evicting_incomplete_first() -> None:
    """Over the cap, the oldest incomplete flows go before complete ones."""
    clock = _FakeClock()
    orchestrator = _orchestrator(clock, max_flows=3)
    completed = orchestrator.create_flow("a.jpg")
    orchestrator.attach_result(_result())
    orchestrator.attach_draft(ReceiptRecord(date="2026-02-28"))
    orchestrator.complete_flow()
    ids = []
    for name in ("b.jpg", "c.jpg", "d.jpg"):
        clock.advance(60)
        ids.append(orchestrator.create_flow(name).id)

    remaining = orchestrator.flows
    assert len(remaining) == 3
    assert completed.id in remaining
    assert ids[0] not in remaining
    assert orchestrator.active_flow_id == ids[-1]


def test_state_survives_restart_through_snapshot_store() -> None:
    clock = _FakeClock()
    store = InMemoryFlowSnapshotStore()
    orchestrator = _orchestrator(clock, store)
    flow = orchestrator.create_flow("receipt.jpg")
    orchestrator.attach_result(_result())

    restored = _orchestrator(clock, store)

    assert restored.active_flow_id == flow.id
    active = restored.active_flow
    assert active is not None
    assert active.result is not None
    assert active.result.classification.amount == "45.20"


def test_rehydrate_drops_pointer_to_completed_flow() -> None:
    clock = _FakeClock()
    store = InMemoryFlowSnapshotStore()
    orchestrator = _orchestrator(clock, store)
    flow = orchestrator.create_flow("receipt.jpg")
    snapshot = orchestrator.snapshot()
    snapshot.flows[flow.id].is_complete = True

    restored = _orchestrator(clock, InMemoryFlowSnapshotStore(snapshot))

    assert restored.has_active_flow is False
    assert restored.get_flow(flow.id) is not None


class _BrokenStore:
    def load(self) -> None:
        raise OSError("disk unavailable")

    def save(self, snapshot: object) -> None:
        raise OSError("disk unavailable")


def test_store_failures_do_not_break_orchestration() -> None:
    """Persistence errors are logged; in-memory state keeps working."""
    orchestrator = FlowOrchestrator(store=_BrokenStore(), clock=_FakeClock())
    flow = orchestrator.create_flow("receipt.jpg")
    assert orchestrator.active_flow_id == flow.id
    orchestrator.cancel_flow()
    assert orchestrator.has_active_flow is False
