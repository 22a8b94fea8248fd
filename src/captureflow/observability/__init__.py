"""Tracing exports."""

from captureflow.observability.tracing import (
    LangfuseTracer,
    NoOpTracer,
    TracerProtocol,
    create_tracer,
    trace_id_for,
)

__all__ = [
    "LangfuseTracer",
    "NoOpTracer",
    "TracerProtocol",
    "create_tracer",
    "trace_id_for",
]
