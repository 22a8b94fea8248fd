"""Async retry helpers for remote service calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from captureflow.config.models import RetryConfig

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff policy."""

    max_attempts: int
    backoff_seconds: float
    max_backoff_seconds: float = 10.0
    jitter_seconds: float = 0.2

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            backoff_seconds=config.backoff_seconds,
            max_backoff_seconds=config.max_backoff_seconds,
            jitter_seconds=config.jitter_seconds,
        )

    def with_attempts(self, max_attempts: int) -> "RetryPolicy":
        """Return a copy with a different attempt budget."""
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff_seconds=self.backoff_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
            jitter_seconds=self.jitter_seconds,
        )


class AsyncRetryExecutor:
    """Await coroutine factories with bounded retries and exponential backoff.

    Only exceptions accepted by ``should_retry`` are retried; anything else,
    and the last failure once the budget is spent, propagates unchanged.
    Task cancellation is never retried.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter_fn: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.policy = policy
        self._sleep = sleep_fn
        self._jitter = jitter_fn

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        stage_name: str,
        should_retry: Callable[[Exception], bool],
        max_attempts: int | None = None,
    ) -> T:
        attempts = self.policy.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                if attempt >= attempts or not should_retry(exc):
                    raise
                delay = self.backoff_delay(attempt)
                LOGGER.info(
                    "%s failed (attempt %s/%s), retrying in %.2fs: %s",
                    stage_name,
                    attempt,
                    attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                attempt += 1

    def backoff_delay(self, attempt: int) -> float:
        """Return the delay before retry number ``attempt`` (1-based)."""
        base_delay = min(
            self.policy.backoff_seconds * (2 ** (attempt - 1)),
            self.policy.max_backoff_seconds,
        )
        jitter = self._jitter(0.0, self.policy.jitter_seconds)
        return max(0.0, base_delay + jitter)
