"""Pure attempt reducer and the stateful machine wrapping it."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, assert_never

from captureflow.attempt.events import (
    AttemptEvent,
    Cancel,
    ClassifyComplete,
    ClassifyProgress,
    ConfirmChanges,
    DiscardChanges,
    EnterEdit,
    EnterReview,
    ExtractComplete,
    Fail,
    ImageCaptured,
    OptimizeComplete,
    OptimizeProgress,
    ProcessProgress,
    ProcessStarted,
    Reset,
    Retry,
    SaveComplete,
    SaveStart,
    StartCapture,
    UpdateField,
    UploadComplete,
    UploadProgress,
    UploadStarted,
)
from captureflow.attempt.progress import attempt_progress
from captureflow.attempt.states import (
    AttemptContext,
    AttemptSnapshot,
    AttemptState,
    Capturing,
    Classifying,
    Complete,
    Editing,
    ErrorState,
    Extracting,
    Idle,
    Optimizing,
    Processing,
    Reviewing,
    Saving,
    Uploading,
)
from captureflow.clock import Clock, SystemClock, new_correlation_id
from captureflow.constants import DEFAULT_MAX_RETRIES
from captureflow.errors import ErrorCode, user_message_for
from captureflow.schemas.enums import CaptureSource
from captureflow.schemas.result_models import ProcessingError

LOGGER = logging.getLogger(__name__)

Listener = Callable[[AttemptSnapshot, AttemptEvent], None]

_ProgressState = Optimizing | Uploading | Processing | Extracting | Classifying


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _enter(snapshot: AttemptSnapshot, state: AttemptState, now: datetime) -> AttemptSnapshot:
    context = snapshot.context
    timings = dict(context.stage_timings)
    if context.state_entered_at is not None:
        leaving = snapshot.state.status
        elapsed = max(0.0, (now - context.state_entered_at).total_seconds())
        timings[leaving] = timings.get(leaving, 0.0) + elapsed
    return AttemptSnapshot(
        state=state,
        context=context.model_copy(
            update={"state_entered_at": now, "stage_timings": timings}
        ),
    )


def _with_progress(
    snapshot: AttemptSnapshot, state: _ProgressState, progress: float
) -> AttemptSnapshot:
    value = max(state.progress, _clamp(progress))
    if value == state.progress:
        return snapshot
    return snapshot.model_copy(
        update={"state": state.model_copy(update={"progress": value})}
    )


def _interrupted(state: AttemptState) -> AttemptState:
    """Return the state an error interrupts; errors never nest."""
    if isinstance(state, ErrorState):
        return state.previous_state
    return state


def _error(code: ErrorCode, message: str, *, stage: str, now: datetime) -> ProcessingError:
    return ProcessingError(
        code=code.value,
        message=message,
        user_message=user_message_for(code),
        retryable=False,
        stage=stage,
        timestamp=now,
    )


def reduce_attempt(
    snapshot: AttemptSnapshot,
    event: AttemptEvent,
    *,
    now: datetime,
) -> AttemptSnapshot:
    """Return the snapshot after ``event``.

    Events that are not valid in the current state return ``snapshot``
    itself, so callers can detect ignored events by identity.
    """
    state = snapshot.state
    context = snapshot.context

    if isinstance(event, StartCapture):
        if not isinstance(state, Idle):
            return snapshot
        return AttemptSnapshot(
            state=Capturing(source=event.source),
            context=AttemptContext(
                correlation_id=event.correlation_id,
                started_at=now,
                state_entered_at=now,
                max_retries=context.max_retries,
            ),
        )

    if isinstance(event, ImageCaptured):
        if not isinstance(state, Capturing):
            return snapshot
        return _enter(snapshot, Optimizing(image_ref=event.image_ref), now)

    if isinstance(event, OptimizeProgress):
        if not isinstance(state, Optimizing):
            return snapshot
        return _with_progress(snapshot, state, event.progress)

    if isinstance(event, OptimizeComplete):
        if not isinstance(state, Optimizing):
            return snapshot
        return _enter(snapshot, Uploading(image_ref=state.image_ref), now)

    if isinstance(event, UploadStarted):
        if not isinstance(state, Uploading):
            return snapshot
        return snapshot.model_copy(
            update={"state": state.model_copy(update={"upload_id": event.upload_id})}
        )

    if isinstance(event, UploadProgress):
        if not isinstance(state, Uploading):
            return snapshot
        return _with_progress(snapshot, state, event.progress)

    if isinstance(event, UploadComplete):
        if not isinstance(state, Uploading):
            return snapshot
        return _enter(snapshot, Processing(image_ref=state.image_ref), now)

    if isinstance(event, ProcessStarted):
        if not isinstance(state, (Processing, Extracting)):
            return snapshot
        return snapshot.model_copy(
            update={"state": state.model_copy(update={"job_id": event.job_id})}
        )

    if isinstance(event, ProcessProgress):
        if isinstance(state, Processing) and event.stage == "extracting":
            return _enter(
                snapshot,
                Extracting(
                    image_ref=state.image_ref,
                    job_id=state.job_id,
                    progress=_clamp(event.progress),
                ),
                now,
            )
        if not isinstance(state, (Processing, Extracting)):
            return snapshot
        return _with_progress(snapshot, state, event.progress)

    if isinstance(event, ExtractComplete):
        if not isinstance(state, (Processing, Extracting)):
            return snapshot
        return _enter(
            snapshot, Classifying(image_ref=state.image_ref, text=event.text), now
        )

    if isinstance(event, ClassifyProgress):
        if not isinstance(state, Classifying):
            return snapshot
        return _with_progress(snapshot, state, event.progress)

    if isinstance(event, ClassifyComplete):
        if not isinstance(state, Classifying):
            return snapshot
        return _enter(snapshot, Reviewing(result=event.result), now)

    if isinstance(event, EnterReview):
        if isinstance(state, ErrorState) and isinstance(state.previous_state, Reviewing):
            return _enter(snapshot, state.previous_state, now)
        return snapshot

    if isinstance(event, EnterEdit):
        if not isinstance(state, Reviewing):
            return snapshot
        return _enter(
            snapshot, Editing(result=state.result, changes=dict(state.changes)), now
        )

    if isinstance(event, UpdateField):
        if not isinstance(state, Editing):
            return snapshot
        pending = {**state.pending_changes, event.field: event.value}
        return snapshot.model_copy(
            update={"state": state.model_copy(update={"pending_changes": pending})}
        )

    if isinstance(event, ConfirmChanges):
        if not isinstance(state, Editing):
            return snapshot
        merged = {**state.changes, **state.pending_changes}
        return _enter(snapshot, Reviewing(result=state.result, changes=merged), now)

    if isinstance(event, DiscardChanges):
        if not isinstance(state, Editing):
            return snapshot
        return _enter(
            snapshot, Reviewing(result=state.result, changes=dict(state.changes)), now
        )

    if isinstance(event, SaveStart):
        if not isinstance(state, Reviewing):
            return snapshot
        return _enter(snapshot, Saving(record=event.record), now)

    if isinstance(event, SaveComplete):
        if not isinstance(state, Saving):
            return snapshot
        return _enter(snapshot, Complete(record=event.record or state.record), now)

    if isinstance(event, Fail):
        if isinstance(state, (Idle, Complete)):
            return snapshot
        can_retry = event.error.retryable and context.retry_count < context.max_retries
        return _enter(
            snapshot,
            ErrorState(
                error=event.error,
                previous_state=_interrupted(state),
                can_retry=can_retry,
            ),
            now,
        )

    if isinstance(event, Retry):
        if not isinstance(state, ErrorState):
            return snapshot
        if state.can_retry:
            restored = _enter(snapshot, state.previous_state, now)
            return restored.model_copy(
                update={
                    "context": restored.context.model_copy(
                        update={"retry_count": context.retry_count + 1}
                    )
                }
            )
        if state.error.retryable:
            limit_error = _error(
                ErrorCode.RETRY_LIMIT_EXCEEDED,
                f"Retry limit of {context.max_retries} reached "
                f"(last error: {state.error.code})",
                stage=state.previous_state.status,
                now=now,
            )
            return snapshot.model_copy(
                update={"state": state.model_copy(update={"error": limit_error})}
            )
        return snapshot

    if isinstance(event, Cancel):
        if isinstance(state, (Idle, Complete)):
            return snapshot
        if isinstance(state, ErrorState) and state.error.code == ErrorCode.CANCELLED.value:
            return snapshot
        previous = _interrupted(state)
        return _enter(
            snapshot,
            ErrorState(
                error=_error(
                    ErrorCode.CANCELLED, event.reason, stage=previous.status, now=now
                ),
                previous_state=previous,
                can_retry=False,
            ),
            now,
        )

    if isinstance(event, Reset):
        return AttemptSnapshot(
            state=Idle(), context=AttemptContext(max_retries=context.max_retries)
        )

    assert_never(event)


class AttemptStateMachine:
    """Holds the current attempt snapshot and notifies listeners on change."""

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Clock | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._snapshot = AttemptSnapshot(context=AttemptContext(max_retries=max_retries))
        self._listeners: list[Listener] = []

    @property
    def snapshot(self) -> AttemptSnapshot:
        return self._snapshot

    @property
    def state(self) -> AttemptState:
        return self._snapshot.state

    @property
    def context(self) -> AttemptContext:
        return self._snapshot.context

    @property
    def progress(self) -> float:
        return attempt_progress(self._snapshot.state)

    @property
    def can_retry(self) -> bool:
        state = self._snapshot.state
        return isinstance(state, ErrorState) and state.can_retry

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, event: AttemptEvent) -> AttemptState:
        previous = self._snapshot
        current = reduce_attempt(previous, event, now=self._clock.now())
        if current is previous:
            LOGGER.debug(
                "Ignored %s in state %s", type(event).__name__, previous.state.status
            )
            return current.state
        self._snapshot = current
        if current.state.status != previous.state.status:
            LOGGER.debug(
                "Attempt %s: %s -> %s",
                current.context.correlation_id,
                previous.state.status,
                current.state.status,
            )
        for listener in list(self._listeners):
            try:
                listener(current, event)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Attempt listener raised: %s", exc)
        return current.state

    def start_capture(self, source: CaptureSource = CaptureSource.CAMERA) -> AttemptState:
        """Begin a new attempt with a fresh correlation id."""
        return self.dispatch(
            StartCapture(
                source=source, correlation_id=new_correlation_id(self._clock.now())
            )
        )
