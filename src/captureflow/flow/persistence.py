"""Durable snapshot stores for the flow map."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import orjson

from captureflow.schemas.flow_models import FlowSnapshot

DEFAULT_SNAPSHOT_KEY = "flows"


def encode_snapshot(snapshot: FlowSnapshot) -> bytes:
    return orjson.dumps(snapshot.model_dump(mode="json"))


def decode_snapshot(payload: bytes | str) -> FlowSnapshot:
    return FlowSnapshot.model_validate(orjson.loads(payload))


class FlowSnapshotStore(Protocol):
    """Persistence port of the flow orchestrator."""

    def load(self) -> FlowSnapshot | None:
        """Return the last saved snapshot, if any."""

    def save(self, snapshot: FlowSnapshot) -> None:
        """Replace the stored snapshot."""


class InMemoryFlowSnapshotStore:
    """Process-local store holding the serialized snapshot."""

    def __init__(self, initial: FlowSnapshot | None = None) -> None:
        self._payload: bytes | None = (
            encode_snapshot(initial) if initial is not None else None
        )
        self.save_count = 0

    def load(self) -> FlowSnapshot | None:
        if self._payload is None:
            return None
        return decode_snapshot(self._payload)

    def save(self, snapshot: FlowSnapshot) -> None:
        self._payload = encode_snapshot(snapshot)
        self.save_count += 1


class SQLiteFlowSnapshotStore:
    """SQLite-backed snapshot store; one row per snapshot key, last write wins."""

    def __init__(self, db_path: Path, *, key: str = DEFAULT_SNAPSHOT_KEY) -> None:
        self.db_path = db_path
        self.key = key
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS flow_snapshots (
                    snapshot_key TEXT PRIMARY KEY,
                    payload_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def load(self) -> FlowSnapshot | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload_json FROM flow_snapshots WHERE snapshot_key = ?",
                (self.key,),
            ).fetchone()
        if row is None:
            return None
        return decode_snapshot(row[0])

    def save(self, snapshot: FlowSnapshot) -> None:
        payload_json = encode_snapshot(snapshot).decode("utf-8")
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO flow_snapshots (snapshot_key, payload_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(snapshot_key) DO UPDATE SET
                    payload_json=excluded.payload_json,
                    updated_at=excluded.updated_at
                """,
                (self.key, payload_json, datetime.now(UTC).isoformat()),
            )
