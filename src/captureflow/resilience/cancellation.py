"""Cooperative cancellation tokens."""

from __future__ import annotations

from typing import Callable

from captureflow.errors import cancelled_error


class CancellationToken:
    """Cancellation flag that composes across nested operations.

    A child token reports cancelled when it or any ancestor was cancelled,
    or when one of its extra ``checks`` returns true.
    """

    def __init__(
        self,
        *,
        parent: CancellationToken | None = None,
        checks: list[Callable[[], bool]] | None = None,
    ) -> None:
        self._parent = parent
        self._checks = list(checks or [])
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self._parent is not None and self._parent.cancelled:
            return True
        return any(check() for check in self._checks)

    def cancel(self) -> None:
        self._cancelled = True

    def child(self, *checks: Callable[[], bool]) -> CancellationToken:
        """Return a token linked to this one."""
        return CancellationToken(parent=self, checks=list(checks))

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise the canonical CANCELLED pipeline error when cancelled."""
        if self.cancelled:
            raise cancelled_error(stage)
