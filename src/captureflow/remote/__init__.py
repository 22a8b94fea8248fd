"""Remote OCR service client exports."""

from captureflow.remote.client import RemoteOcrService
from captureflow.remote.http_client import HttpOcrServiceClient, is_retryable_status

__all__ = ["HttpOcrServiceClient", "RemoteOcrService", "is_retryable_status"]
