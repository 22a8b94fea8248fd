"""Capture session: composes orchestrator, engine, attempt machine and draft editor."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from captureflow.attempt import (
    AttemptStateMachine,
    Cancel,
    ConfirmChanges,
    Editing,
    EnterEdit,
    ErrorState,
    PipelineAttemptBridge,
    Reset,
    Retry,
    Reviewing,
    SaveComplete,
    SaveStart,
    Saving,
    UpdateField,
)
from captureflow.attempt.states import PIPELINE_STATES, AttemptState
from captureflow.clock import Clock, SystemClock
from captureflow.config import load_app_config
from captureflow.draft import DraftEditor, ReceiptValidator
from captureflow.errors import DraftError, ErrorCode, FlowStateError, PipelineError
from captureflow.flow import FlowOrchestrator, FlowTransitionStore, SQLiteFlowSnapshotStore
from captureflow.observability import NoOpTracer, TracerProtocol, create_tracer
from captureflow.pipeline import PipelineEngine
from captureflow.remote import HttpOcrServiceClient, RemoteOcrService
from captureflow.resilience import RetryPolicy
from captureflow.runtime_env import load_runtime_env
from captureflow.schemas.draft_models import FormValidationResult, ReceiptRecord
from captureflow.schemas.enums import FlowStep, TransitionReason
from captureflow.schemas.flow_models import Flow
from captureflow.schemas.result_models import ProcessingResult

LOGGER = logging.getLogger(__name__)

PersistFn = Callable[[ReceiptRecord], Awaitable[ReceiptRecord | None]]


class CaptureSession:
    """One user's capture-to-report journey.

    Pipeline failures are recorded on the flow and in the attempt machine;
    cancellations only move the attempt to its cancelled error state.
    """

    def __init__(
        self,
        *,
        orchestrator: FlowOrchestrator,
        engine: PipelineEngine,
        machine: AttemptStateMachine,
        editor: DraftEditor,
        validator: ReceiptValidator,
        tracer: TracerProtocol | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.engine = engine
        self.machine = machine
        self.editor = editor
        self.validator = validator
        self.tracer = tracer or NoOpTracer()
        self._clock = clock or SystemClock()
        self._bridge = PipelineAttemptBridge(machine, job_source=lambda: engine.current_job)

    @property
    def flow(self) -> Flow | None:
        return self.orchestrator.active_flow

    @property
    def attempt_state(self) -> AttemptState:
        return self.machine.state

    def start(self, image_ref: str) -> Flow:
        """Create a new active flow and a fresh attempt for ``image_ref``."""
        flow = self.orchestrator.create_flow(image_ref)
        self.machine.dispatch(Reset())
        self._bridge.begin(image_ref)
        self.editor.clear_draft()
        return flow

    async def process(self) -> ProcessingResult | None:
        """Run the pipeline for the active flow.

        Returns ``None`` when the run was cancelled; other failures are
        recorded and re-raised.
        """
        flow = self.orchestrator.active_flow
        if flow is None:
            raise FlowStateError("No active flow to process")
        if not isinstance(self.machine.state, PIPELINE_STATES):
            raise FlowStateError(
                f"Attempt in state {self.machine.state.status!r} cannot be processed"
            )
        try:
            result = await self.engine.process_image(
                flow.image_ref,
                on_progress=self._bridge.on_progress,
                correlation_id=self.machine.context.correlation_id,
            )
        except PipelineError as error:
            if error.code == ErrorCode.ALREADY_PROCESSING:
                raise
            if error.is_cancellation:
                self.machine.dispatch(Cancel())
                return None
            record = error.to_record(timestamp=self._clock.now())
            self.orchestrator.record_error(record)
            self._bridge.fail(record)
            raise

        if not isinstance(self.machine.state, PIPELINE_STATES):
            LOGGER.info("Discarding result of an attempt that is no longer running")
            return None
        self.orchestrator.attach_result(result)
        self.orchestrator.clear_error()
        self._bridge.finish(result)
        self.orchestrator.advance_step(FlowStep.REVIEW, TransitionReason.AUTO_ADVANCE)
        return result

    async def retry(self) -> ProcessingResult | None:
        """Resume the interrupted attempt if its retry budget allows it."""
        state = self.machine.dispatch(Retry())
        if isinstance(state, ErrorState):
            LOGGER.info("Retry rejected: %s", state.error.code)
            return None
        self.orchestrator.record_retry()
        self.orchestrator.clear_error()
        return await self.process()

    async def cancel(self) -> None:
        """Abort processing and abandon the active flow. Never raises."""
        await self.engine.cancel_processing()
        self.machine.dispatch(Cancel())
        self.orchestrator.cancel_flow()

    def begin_review(self) -> ReceiptRecord:
        """Seed the draft editor from the flow's processing result."""
        flow = self.orchestrator.active_flow
        if flow is None or flow.result is None:
            raise FlowStateError("No processing result to review")
        draft = self.editor.initialize_draft(flow.result)
        self.orchestrator.attach_draft(draft)
        return draft

    def update_field(self, field: str, value: Any) -> ReceiptRecord:
        draft = self.editor.update_field(field, value)
        self.editor.validate_field(
            field, self.validator.validate_field(field, getattr(draft, field), draft)
        )
        if isinstance(self.machine.state, Reviewing):
            self.machine.dispatch(EnterEdit())
        self.machine.dispatch(UpdateField(field=field, value=str(value)))
        return draft

    def validate(self) -> FormValidationResult:
        draft = self.editor.draft
        if draft is None:
            raise DraftError("Draft is not initialized")
        result = self.validator.validate_receipt(draft)
        self.editor.validate_form(result)
        return result

    async def save(self, persist: PersistFn) -> ReceiptRecord | None:
        """Validate and persist the draft.

        Returns the saved record, or ``None`` when ``persist`` failed; the
        failure is kept on the editor together with every pending edit.
        """
        if not self.validate().is_valid:
            raise DraftError("Draft has validation errors")
        if self.orchestrator.can_navigate_to(FlowStep.VERIFICATION):
            self.orchestrator.advance_step(FlowStep.VERIFICATION)
        self.editor.start_save()
        if isinstance(self.machine.state, Editing):
            self.machine.dispatch(ConfirmChanges())
        record = self.editor.final_record()
        if not isinstance(self.machine.state, Saving):
            self.machine.dispatch(SaveStart(record=record))
        try:
            saved = await persist(record) or record
        except Exception as exc:
            LOGGER.warning("Saving receipt failed: %s", exc)
            self.editor.save_error(str(exc) or exc.__class__.__name__)
            return None
        self.editor.save_success()
        self.machine.dispatch(SaveComplete(record=saved))
        self.orchestrator.attach_draft(saved)
        return saved

    def complete(self) -> Flow:
        flow = self.orchestrator.complete_flow()
        self.tracer.flush()
        return flow

    async def aclose(self) -> None:
        self.tracer.flush()
        close = getattr(self.engine.service, "aclose", None)
        if close is not None:
            await close()


def build_capture_session(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    service: RemoteOcrService | None = None,
) -> CaptureSession:
    """Wire a session from ``.env``, the settings file and the environment."""
    dotenv_path = load_runtime_env()
    if dotenv_path is not None:
        LOGGER.info("Runtime environment loaded from %s", dotenv_path.name)
    active_env = dict(os.environ) if env is None else env
    config = load_app_config(config_path, env=active_env)
    tracer = create_tracer(active_env)
    clock = SystemClock()
    persistence = config.persistence
    orchestrator = FlowOrchestrator(
        config=config.retention,
        store=SQLiteFlowSnapshotStore(persistence.db_path),
        clock=clock,
        transition_store=FlowTransitionStore(persistence.db_path)
        if persistence.record_transitions
        else None,
    )
    engine = PipelineEngine(
        config=config.pipeline,
        service=service
        or HttpOcrServiceClient(
            config.remote, retry_policy=RetryPolicy.from_config(config.retries)
        ),
        tracer=tracer,
        clock=clock,
    )
    return CaptureSession(
        orchestrator=orchestrator,
        engine=engine,
        machine=AttemptStateMachine(max_retries=config.attempt.max_retries, clock=clock),
        editor=DraftEditor(history_limit=config.draft.history_limit, clock=clock),
        validator=ReceiptValidator(config.draft.validation, clock=clock),
        tracer=tracer,
        clock=clock,
    )
