"""Flow orchestration exports."""

from captureflow.flow.guards import STEP_REQUIREMENTS, check_navigation
from captureflow.flow.orchestrator import FlowOrchestrator
from captureflow.flow.persistence import (
    FlowSnapshotStore,
    InMemoryFlowSnapshotStore,
    SQLiteFlowSnapshotStore,
)
from captureflow.flow.transition_store import FlowTransitionStore

__all__ = [
    "FlowOrchestrator",
    "FlowSnapshotStore",
    "FlowTransitionStore",
    "InMemoryFlowSnapshotStore",
    "SQLiteFlowSnapshotStore",
    "STEP_REQUIREMENTS",
    "check_navigation",
]
