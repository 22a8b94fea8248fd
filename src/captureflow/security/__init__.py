"""Redaction helpers for logs and traces."""

from captureflow.security.redaction import REDACTED, redact_mapping, redact_text

__all__ = ["REDACTED", "redact_mapping", "redact_text"]
