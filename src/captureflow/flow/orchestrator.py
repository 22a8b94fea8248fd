"""Flow orchestrator: the single authority over journey steps."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from captureflow.clock import Clock, SystemClock, new_flow_id
from captureflow.config.models import RetentionConfig
from captureflow.errors import FlowNavigationError, FlowStateError, PipelineError
from captureflow.flow.guards import check_navigation
from captureflow.flow.persistence import FlowSnapshotStore
from captureflow.flow.transition_store import FlowTransitionStore
from captureflow.schemas.draft_models import ReceiptRecord
from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.flow_models import (
    Flow,
    FlowError,
    FlowSnapshot,
    FlowTransition,
    NavigationGuardResult,
)
from captureflow.schemas.result_models import ProcessingError, ProcessingResult
from captureflow.security.redaction import redact_text

LOGGER = logging.getLogger(__name__)


class FlowOrchestrator:
    """Owns the flow map and the active-flow slot.

    Flows are mutated only through the operations below; every accessor
    returns a deep copy. Durations are measured in seconds.
    """

    def __init__(
        self,
        *,
        config: RetentionConfig | None = None,
        store: FlowSnapshotStore | None = None,
        clock: Clock | None = None,
        transition_store: FlowTransitionStore | None = None,
    ) -> None:
        self.config = config or RetentionConfig()
        self._store = store
        self._clock = clock or SystemClock()
        self._transition_store = transition_store
        self._flows: dict[str, Flow] = {}
        self._active_flow_id: str | None = None
        self._rehydrate()

    @property
    def active_flow_id(self) -> str | None:
        return self._active_flow_id

    @property
    def has_active_flow(self) -> bool:
        return self._active_flow_id is not None

    @property
    def active_flow(self) -> Flow | None:
        flow = self._active()
        return flow.model_copy(deep=True) if flow is not None else None

    @property
    def flows(self) -> dict[str, Flow]:
        return {
            flow_id: flow.model_copy(deep=True) for flow_id, flow in self._flows.items()
        }

    def get_flow(self, flow_id: str) -> Flow | None:
        """Read-only lookup into the retained flow set."""
        flow = self._flows.get(flow_id)
        return flow.model_copy(deep=True) if flow is not None else None

    def check_navigation(self, step: FlowStep) -> NavigationGuardResult:
        return check_navigation(self._active(), step)

    def can_navigate_to(self, step: FlowStep) -> bool:
        return self.check_navigation(step).allowed

    def snapshot(self) -> FlowSnapshot:
        """Return the persistable form of the flow map."""
        return FlowSnapshot(
            flows=self.flows,
            active_flow_id=self._active_flow_id,
            has_active_flow=self.has_active_flow,
        )

    def create_flow(self, image_ref: str) -> Flow:
        """Start a new active flow at ``capture`` and advance it to ``processing``."""
        if not image_ref or not image_ref.strip():
            raise FlowStateError("image_ref must not be empty")
        if self._active_flow_id is not None:
            LOGGER.info("Cancelling flow %s before starting a new one", self._active_flow_id)
            self.cancel_flow()

        now = self._clock.now()
        flow = Flow(
            id=new_flow_id(now),
            image_ref=image_ref,
            current_step=FlowStep.CAPTURE,
            created_at=now,
            step_history=[FlowStep.CAPTURE],
        )
        self._flows[flow.id] = flow
        self._active_flow_id = flow.id
        self._move(flow, FlowStep.PROCESSING, TransitionReason.AUTO_ADVANCE, now)
        LOGGER.info("Created flow %s", flow.id)
        self.cleanup()
        self._save()
        return flow.model_copy(deep=True)

    def advance_step(
        self,
        step: FlowStep,
        reason: TransitionReason = TransitionReason.USER_ACTION,
    ) -> Flow:
        """Move the active flow to ``step`` if the navigation guard allows it."""
        flow = self._active()
        guard = check_navigation(flow, step)
        if flow is None or not guard.allowed:
            raise FlowNavigationError(
                f"Cannot navigate to {step.value}: {guard.reason or 'not allowed'}"
            )
        if flow.current_step != step:
            self._move(flow, step, reason, self._clock.now())
            self._save()
        return flow.model_copy(deep=True)

    def attach_result(self, result: ProcessingResult) -> Flow:
        flow = self._require_active()
        flow.result = result
        self._save()
        return flow.model_copy(deep=True)

    def attach_draft(self, record: ReceiptRecord) -> Flow:
        flow = self._require_active()
        flow.draft = record
        self._save()
        return flow.model_copy(deep=True)

    def record_error(self, error: ProcessingError | PipelineError | FlowError) -> None:
        """Append an error to the active flow. Never raises."""
        try:
            flow = self._active()
            if flow is None:
                LOGGER.warning("Dropping error record without an active flow")
                return
            if isinstance(error, PipelineError):
                error = error.to_record(timestamp=self._clock.now())
            if isinstance(error, ProcessingError):
                error = FlowError.from_processing_error(error, step=flow.current_step)
            flow.error_history.append(error)
            flow.last_error = error
            flow.metrics.error_count += 1
            LOGGER.info(
                "Flow %s recorded error %s: %s",
                flow.id,
                error.code,
                redact_text(error.message),
            )
            self._save()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to record flow error: %s", exc)

    def clear_error(self) -> None:
        flow = self._active()
        if flow is None or flow.last_error is None:
            return
        flow.last_error = None
        self._save()

    def record_retry(self) -> None:
        flow = self._active()
        if flow is None:
            return
        flow.metrics.retry_count += 1
        self._save()

    def complete_flow(self) -> Flow:
        """Finish the active flow; it leaves the active slot but stays in history."""
        flow = self._require_active()
        if flow.draft is None:
            raise FlowStateError("Cannot complete a flow without a draft")
        now = self._clock.now()
        if flow.current_step != FlowStep.REPORT:
            self._move(flow, FlowStep.REPORT, TransitionReason.USER_ACTION, now)
        flow.is_complete = True
        flow.metrics.completion_rate = 1
        flow.metrics.total_duration = _seconds_between(flow.created_at, now)
        self._active_flow_id = None
        LOGGER.info("Completed flow %s", flow.id)
        self._save()
        return flow.model_copy(deep=True)

    def cancel_flow(self) -> None:
        """Abandon the active flow. Idempotent and never raises."""
        try:
            flow = self._active()
            if flow is None:
                return
            flow.metrics.abandonment_step = flow.current_step
            flow.metrics.total_duration = _seconds_between(
                flow.created_at, self._clock.now()
            )
            self._active_flow_id = None
            LOGGER.info("Cancelled flow %s at %s", flow.id, flow.current_step.value)
            self._save()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to cancel flow: %s", exc)
            self._active_flow_id = None

    def cleanup(self) -> list[str]:
        """Evict stale flows, then trim to the configured cap.

        The active flow is never evicted and counts toward the cap. When
        trimming, incomplete flows go before complete ones, oldest first.
        """
        now = self._clock.now()
        evicted: list[str] = []
        for flow_id, flow in list(self._flows.items()):
            if flow_id == self._active_flow_id:
                continue
            hours = (
                self.config.complete_retention_hours
                if flow.is_complete
                else self.config.incomplete_retention_hours
            )
            if now - flow.created_at > timedelta(hours=hours):
                del self._flows[flow_id]
                evicted.append(flow_id)

        if len(self._flows) > self.config.max_flows:
            ranked = sorted(
                self._flows.values(),
                key=lambda item: (
                    item.id == self._active_flow_id,
                    item.is_complete,
                    item.created_at,
                ),
                reverse=True,
            )
            for flow in ranked[self.config.max_flows :]:
                del self._flows[flow.id]
                evicted.append(flow.id)

        if evicted:
            LOGGER.info("Evicted %s stale flow(s): %s", len(evicted), ", ".join(evicted))
            self._save()
        return evicted

    def _active(self) -> Flow | None:
        if self._active_flow_id is None:
            return None
        return self._flows.get(self._active_flow_id)

    def _require_active(self) -> Flow:
        flow = self._active()
        if flow is None:
            raise FlowStateError("No active flow")
        return flow

    def _move(
        self,
        flow: Flow,
        step: FlowStep,
        reason: TransitionReason,
        now: datetime,
    ) -> None:
        entered_at = flow.transitions[-1].timestamp if flow.transitions else flow.created_at
        leaving = flow.current_step
        durations = flow.metrics.step_durations
        durations[leaving] = durations.get(leaving, 0.0) + _seconds_between(entered_at, now)

        transition = FlowTransition(
            from_step=leaving,
            to_step=step,
            reason=reason,
            timestamp=now,
        )
        flow.transitions.append(transition)
        if step not in flow.step_history:
            flow.step_history.append(step)
        flow.current_step = step
        LOGGER.debug(
            "Flow %s: %s -> %s (%s)", flow.id, leaving.value, step.value, reason.value
        )
        if self._transition_store is not None:
            try:
                self._transition_store.record_transition(
                    flow_id=flow.id, transition=transition
                )
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to record transition for %s: %s", flow.id, exc)

    def _rehydrate(self) -> None:
        if self._store is None:
            return
        try:
            snapshot = self._store.load()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to load flow snapshot, starting empty: %s", exc)
            return
        if snapshot is None:
            return
        self._flows = dict(snapshot.flows)
        active_id = snapshot.active_flow_id
        if active_id is not None:
            active = self._flows.get(active_id)
            if active is None or active.is_complete:
                LOGGER.info("Dropping stale active flow pointer %s", active_id)
                active_id = None
        self._active_flow_id = active_id

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self.snapshot())
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to persist flow snapshot: %s", exc)


def _seconds_between(start: datetime, end: datetime) -> float:
    return max(0.0, (end - start).total_seconds())
