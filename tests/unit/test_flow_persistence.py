"""Flow snapshot and transition store tests."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from captureflow.flow.persistence import (
    InMemoryFlowSnapshotStore,
    SQLiteFlowSnapshotStore,
    decode_snapshot,
    encode_snapshot,
)
from captureflow.flow.transition_store import FlowTransitionStore
from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.flow_models import Flow, FlowSnapshot, FlowTransition


def _snapshot() -> FlowSnapshot:
    flow = Flow(
        id="flow_1700000000000_abc123def",
        image_ref="receipt.jpg",
        current_step=FlowStep.PROCESSING,
        created_at=datetime(2026, 3, 1, 9, 0, tzinfo=UTC),
        step_history=[FlowStep.CAPTURE, FlowStep.PROCESSING],
    )
    flow.metrics.step_durations[FlowStep.CAPTURE] = 1.5
    return FlowSnapshot(
        flows={flow.id: flow}, active_flow_id=flow.id, has_active_flow=True
    )


def test_snapshot_codec_preserves_step_durations() -> None:
    decoded = decode_snapshot(encode_snapshot(_snapshot()))
    flow = decoded.flows["flow_1700000000000_abc123def"]
    assert flow.metrics.step_durations == {FlowStep.CAPTURE: 1.5}
    assert flow.created_at == datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def test_in_memory_store_counts_saves() -> None:
    store = InMemoryFlowSnapshotStore()
    assert store.load() is None
    store.save(_snapshot())
    store.save(_snapshot())
    assert store.save_count == 2
    loaded = store.load()
    assert loaded is not None
    assert loaded.active_flow_id == "flow_1700000000000_abc123def"


def test_sqlite_store_last_write_wins(tmp_path: Path) -> None:
    """Saving twice under one key should keep only the latest snapshot."""
    db_path = tmp_path / "nested" / "flows.db"
    store = SQLiteFlowSnapshotStore(db_path)
    assert store.load() is None

    store.save(_snapshot())
    store.save(FlowSnapshot())

    reopened = SQLiteFlowSnapshotStore(db_path)
    loaded = reopened.load()
    assert loaded is not None
    assert loaded.flows == {}
    assert loaded.active_flow_id is None


def test_transition_store_lists_in_insertion_order(tmp_path: Path) -> None:
    store = FlowTransitionStore(tmp_path / "flows.db")
    moments = [datetime(2026, 3, 1, 9, minute, tzinfo=UTC) for minute in (0, 1)]
    store.record_transition(
        flow_id="flow-a",
        transition=FlowTransition(
            from_step=FlowStep.CAPTURE,
            to_step=FlowStep.PROCESSING,
            reason=TransitionReason.AUTO_ADVANCE,
            timestamp=moments[0],
        ),
    )
    store.record_transition(
        flow_id="flow-a",
        transition=FlowTransition(
            from_step=FlowStep.PROCESSING,
            to_step=FlowStep.REVIEW,
            reason=TransitionReason.USER_ACTION,
            timestamp=moments[1],
        ),
    )
    store.record_transition(
        flow_id="flow-b",
        transition=FlowTransition(
            from_step=FlowStep.CAPTURE,
            to_step=FlowStep.PROCESSING,
            reason=TransitionReason.AUTO_ADVANCE,
            timestamp=moments[0],
        ),
    )

    transitions = store.list_transitions("flow-a")
    assert [item.to_step for item in transitions] == [FlowStep.PROCESSING, FlowStep.REVIEW]
    assert transitions[1].timestamp == moments[1]
