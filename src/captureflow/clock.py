"""Clock port and identifier helpers."""

from __future__ import annotations

import re
import secrets
import time
from datetime import UTC, datetime
from typing import Protocol

_CORRELATION_PATTERN = re.compile(r"^(?P<ts>\d{10,})-(?P<rand>[0-9a-f]{8,})$")


class Clock(Protocol):
    """Time source injected into every stateful component."""

    def now(self) -> datetime:
        """Return the current wall-clock time (timezone-aware, UTC)."""

    def monotonic(self) -> float:
        """Return a monotonic reading in seconds."""


class SystemClock:
    """Clock backed by the host system."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()


def epoch_millis(moment: datetime) -> int:
    """Return ``moment`` as integer milliseconds since the epoch."""
    return int(moment.timestamp() * 1000)


def new_flow_id(now: datetime) -> str:
    """Return a unique, time-ordered flow identifier."""
    return f"flow_{epoch_millis(now)}_{secrets.token_hex(5)[:9]}"


def new_correlation_id(now: datetime | None = None) -> str:
    """Return a correlation id of the form ``<epoch-ms>-<random>``."""
    moment = now or datetime.now(UTC)
    return f"{epoch_millis(moment)}-{secrets.token_hex(4)}"


def is_valid_correlation_id(value: str) -> bool:
    """Return whether ``value`` has the correlation id shape."""
    if not isinstance(value, str):
        return False
    return _CORRELATION_PATTERN.match(value) is not None


def timestamp_from_correlation_id(value: str) -> datetime | None:
    """Extract the creation time embedded in a correlation id."""
    match = _CORRELATION_PATTERN.match(value or "")
    if match is None:
        return None
    return datetime.fromtimestamp(int(match.group("ts")) / 1000, tz=UTC)
