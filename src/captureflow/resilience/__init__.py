"""Retry and cancellation primitives."""

from captureflow.resilience.cancellation import CancellationToken
from captureflow.resilience.retry import AsyncRetryExecutor, RetryPolicy

__all__ = ["AsyncRetryExecutor", "CancellationToken", "RetryPolicy"]
