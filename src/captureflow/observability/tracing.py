"""Langfuse tracing of pipeline runs with a no-op fallback."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from captureflow.security.redaction import redact_mapping

LOGGER = logging.getLogger(__name__)

RUN_SPAN_NAME = "captureflow-pipeline"


class TracerProtocol(Protocol):
    """Tracer contract used by the pipeline engine and capture session.

    One trace per pipeline run, keyed by the run's correlation id; each
    pipeline stage is a child span of the run.
    """

    def start_run(
        self,
        *,
        correlation_id: str,
        image_ref: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    def stage_started(self, *, correlation_id: str, stage: str) -> None: ...

    def stage_finished(
        self,
        *,
        correlation_id: str,
        stage: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    def finish_run(
        self,
        *,
        correlation_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
        output_payload: Any | None = None,
    ) -> None: ...

    def flush(self) -> None: ...


class NoOpTracer:
    """Tracer used when Langfuse is not configured."""

    def start_run(self, **_: Any) -> None:
        return

    def stage_started(self, **_: Any) -> None:
        return

    def stage_finished(self, **_: Any) -> None:
        return

    def finish_run(self, **_: Any) -> None:
        return

    def flush(self) -> None:
        return


@dataclass
class _RunTrace:
    trace_id: str
    span: Any
    stages: dict[str, Any] = field(default_factory=dict)

    def stage_context(self) -> dict[str, str]:
        context = {"trace_id": self.trace_id}
        span_id = getattr(self.span, "id", None)
        if isinstance(span_id, str):
            context["parent_span_id"] = span_id
        return context


class LangfuseTracer:
    """Langfuse-backed tracer keyed by pipeline correlation id.

    Every Langfuse call is best effort: failures are logged at debug level
    and never reach the pipeline.
    """

    def __init__(self, env: Mapping[str, str]) -> None:
        self._client: Any | None = None
        self._traces: dict[str, _RunTrace] = {}
        public_key = env.get("LANGFUSE_PUBLIC_KEY")
        secret_key = env.get("LANGFUSE_SECRET_KEY")
        if not public_key or not secret_key:
            return

        try:
            from langfuse import Langfuse
        except ImportError:
            LOGGER.debug("langfuse is not installed; pipeline tracing disabled")
            return

        options: dict[str, Any] = {"public_key": public_key, "secret_key": secret_key}
        endpoint = env.get("LANGFUSE_BASE_URL") or env.get("LANGFUSE_HOST")
        if endpoint:
            options["host"] = endpoint.rstrip("/")
        try:
            self._client = Langfuse(**options)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Langfuse client unavailable: %s", exc)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def start_run(
        self,
        *,
        correlation_id: str,
        image_ref: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        if self._client is None:
            return
        try:
            self._close_trace(correlation_id)
            trace_id = trace_id_for(correlation_id)
            span = self._client.start_span(
                trace_context={"trace_id": trace_id},
                name=RUN_SPAN_NAME,
                input=redact_mapping({"image_ref": image_ref}),
                metadata=redact_mapping(metadata or {}),
            )
            self._traces[correlation_id] = _RunTrace(trace_id=trace_id, span=span)
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("[%s] Langfuse start_run failed: %s", correlation_id, exc)

    def stage_started(self, *, correlation_id: str, stage: str) -> None:
        trace = self._traces.get(correlation_id)
        if self._client is None or trace is None:
            return
        try:
            trace.stages[stage] = self._client.start_span(
                trace_context=trace.stage_context(),
                name=f"stage:{stage}",
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("[%s] Langfuse stage %s start failed: %s", correlation_id, stage, exc)

    def stage_finished(
        self,
        *,
        correlation_id: str,
        stage: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        trace = self._traces.get(correlation_id)
        if trace is None:
            return
        span = trace.stages.pop(stage, None)
        if span is None:
            return
        try:
            span.update(metadata=redact_mapping({"status": status, **(metadata or {})}))
            span.end()
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("[%s] Langfuse stage %s end failed: %s", correlation_id, stage, exc)

    def finish_run(
        self,
        *,
        correlation_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
        output_payload: Any | None = None,
    ) -> None:
        trace = self._traces.get(correlation_id)
        if trace is None:
            return
        try:
            trace.span.update(
                output=redact_mapping(output_payload) if output_payload is not None else None,
                metadata=redact_mapping({"status": status, **(metadata or {})}),
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("[%s] Langfuse finish_run failed: %s", correlation_id, exc)
        self._close_trace(correlation_id)

    def flush(self) -> None:
        if self._client is None:
            return
        try:
            self._client.flush()
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("Langfuse flush failed: %s", exc)

    def _close_trace(self, correlation_id: str) -> None:
        trace = self._traces.pop(correlation_id, None)
        if trace is None:
            return
        # Stages left open by a failed or cancelled run end with the run.
        for span in [*trace.stages.values(), trace.span]:
            try:
                span.end()
            except Exception as exc:  # noqa: BLE001
                LOGGER.debug("[%s] Langfuse span end failed: %s", correlation_id, exc)


def create_tracer(env: Mapping[str, str]) -> TracerProtocol:
    """Return a Langfuse tracer when credentials are configured, else a no-op."""
    tracer = LangfuseTracer(env)
    if tracer.enabled:
        return tracer
    return NoOpTracer()


def trace_id_for(correlation_id: str) -> str:
    """Derive a deterministic 32-char trace id from a correlation id."""
    return hashlib.sha256(correlation_id.encode("utf-8")).hexdigest()[:32]
