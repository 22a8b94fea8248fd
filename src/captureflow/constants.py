"""Package-wide constants."""

from __future__ import annotations

PACKAGE_VERSION = "0.3.0"
SCHEMA_VERSION = "1.0.0"

DEFAULT_MAX_FLOWS = 10
COMPLETE_FLOW_RETENTION_HOURS = 24
INCOMPLETE_FLOW_RETENTION_HOURS = 1

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_MAX_RETRIES = 3

CORRELATION_HEADER = "X-Correlation-ID"
