"""Async retry executor tests."""

from __future__ import annotations

import asyncio

import pytest

from captureflow.config.models import RetryConfig
from captureflow.resilience.retry import AsyncRetryExecutor, RetryPolicy


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_retry_executor_retries_then_succeeds() -> None:
    """Executor should retry failed attempts and eventually return success."""
    attempts = {"count": 0}
    sleep = _RecordingSleep()

    async def operation() -> str:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise ConnectionError("temporary failure")
        return "ok"

    executor = AsyncRetryExecutor(
        RetryPolicy(max_attempts=3, backoff_seconds=0.1, jitter_seconds=0.0),
        sleep_fn=sleep,
        jitter_fn=lambda _a, _b: 0.0,
    )
    result = asyncio.run(
        executor.run(operation, stage_name="retry-test", should_retry=lambda _exc: True)
    )
    assert result == "ok"
    assert attempts["count"] == 3
    assert sleep.delays == [0.1, 0.2]


def test_retry_executor_reraises_non_retryable_immediately() -> None:
    """Errors rejected by should_retry should propagate on the first attempt."""
    attempts = {"count": 0}
    sleep = _RecordingSleep()

    async def operation() -> None:
        attempts["count"] += 1
        raise ValueError("bad request")

    executor = AsyncRetryExecutor(
        RetryPolicy(max_attempts=5, backoff_seconds=0.1), sleep_fn=sleep
    )
    with pytest.raises(ValueError, match="bad request"):
        asyncio.run(
            executor.run(
                operation,
                stage_name="upload",
                should_retry=lambda exc: isinstance(exc, ConnectionError),
            )
        )
    assert attempts["count"] == 1
    assert sleep.delays == []


def test_retry_executor_reraises_last_error_when_budget_spent() -> None:
    """The final failure should surface unchanged after max_attempts."""
    errors = [ConnectionError("first"), ConnectionError("second")]

    async def operation() -> None:
        raise errors.pop(0)

    executor = AsyncRetryExecutor(
        RetryPolicy(max_attempts=2, backoff_seconds=0.0, jitter_seconds=0.0),
        sleep_fn=_RecordingSleep(),
    )
    with pytest.raises(ConnectionError, match="second"):
        asyncio.run(
            executor.run(operation, stage_name="status", should_retry=lambda _exc: True)
        )


def test_backoff_delay_is_capped() -> None:
    """Exponential backoff should never exceed max_backoff_seconds plus jitter."""
    policy = RetryPolicy.from_config(
        RetryConfig(
            max_attempts=8,
            backoff_seconds=1.0,
            max_backoff_seconds=4.0,
            jitter_seconds=0.5,
        )
    )
    executor = AsyncRetryExecutor(policy, jitter_fn=lambda _a, high: high)
    assert executor.backoff_delay(1) == 1.5
    assert executor.backoff_delay(2) == 2.5
    assert executor.backoff_delay(6) == 4.5
    assert policy.with_attempts(1).max_attempts == 1
    assert policy.with_attempts(1).max_backoff_seconds == 4.0


def test_retry_executor_rejects_zero_attempts() -> None:
    """A zero attempt budget is a programming error."""
    executor = AsyncRetryExecutor(RetryPolicy(max_attempts=0, backoff_seconds=0.0))

    async def operation() -> None:
        return None

    with pytest.raises(ValueError):
        asyncio.run(
            executor.run(operation, stage_name="noop", should_retry=lambda _exc: True)
        )
