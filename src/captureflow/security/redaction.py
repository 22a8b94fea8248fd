"""Redaction of secrets and local paths before logging or tracing."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# (pattern, keeps_prefix_group)
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], bool]] = [
    (re.compile(r"\bsk-lf-[A-Za-z0-9:_-]{8,}\b"), False),
    (re.compile(r"\bpk-lf-[A-Za-z0-9:_-]{8,}\b"), False),
    (re.compile(r"(?i)\b(authorization\s*:\s*bearer\s+)[A-Za-z0-9._:-]+"), True),
    (re.compile(r"(?i)\b(api[-_ ]?key\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"), True),
    (re.compile(r"(?i)\b(token\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"), True),
    (re.compile(r"(?i)([?&](?:signature|sig|x-amz-signature)=)[^&\s]+"), True),
]
_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "password", "secret"}


def redact_text(value: str) -> str:
    """Redact credentials and signed-url parameters from a text value."""
    redacted = value
    for pattern, keeps_prefix in _SENSITIVE_PATTERNS:
        replacement = r"\1" + REDACTED if keeps_prefix else REDACTED
        redacted = pattern.sub(replacement, redacted)
    return redacted


def redact_mapping(value: Any) -> Any:
    """Recursively redact strings in nested dictionaries/lists.

    Values stored under well-known credential keys are replaced entirely.
    """
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {
            key: REDACTED
            if isinstance(key, str) and key.lower() in _SENSITIVE_KEYS
            else redact_mapping(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_mapping(item) for item in value]
    return value
