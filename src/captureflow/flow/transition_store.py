"""Audit log of flow step transitions."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.flow_models import FlowTransition


class FlowTransitionStore:
    """SQLite-backed transition log store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flow_transitions (
                    flow_id TEXT NOT NULL,
                    from_step TEXT NOT NULL,
                    to_step TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
                """
            )

    def record_transition(self, *, flow_id: str, transition: FlowTransition) -> None:
        """Append one transition of ``flow_id``."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO flow_transitions (flow_id, from_step, to_step, reason, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    flow_id,
                    transition.from_step.value,
                    transition.to_step.value,
                    transition.reason.value,
                    transition.timestamp.isoformat(),
                ),
            )

    def list_transitions(self, flow_id: str) -> list[FlowTransition]:
        """Return transitions of a flow in insertion order."""
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT from_step, to_step, reason, timestamp
                FROM flow_transitions
                WHERE flow_id = ?
                ORDER BY rowid ASC
                """,
                (flow_id,),
            ).fetchall()
        return [
            FlowTransition(
                from_step=FlowStep(row[0]),
                to_step=FlowStep(row[1]),
                reason=TransitionReason(row[2]),
                timestamp=row[3],
            )
            for row in rows
        ]
