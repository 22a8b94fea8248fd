"""Navigation guard table for flow steps."""

from __future__ import annotations

from captureflow.schemas.enums import FlowStep
from captureflow.schemas.flow_models import (
    Flow,
    NavigationAction,
    NavigationGuardResult,
)

# Data a flow must carry before it may enter each step.
STEP_REQUIREMENTS: dict[FlowStep, tuple[str, ...]] = {
    FlowStep.CAPTURE: (),
    FlowStep.PROCESSING: ("image_ref",),
    FlowStep.REVIEW: ("image_ref", "result"),
    FlowStep.VERIFICATION: ("image_ref", "result"),
    FlowStep.REPORT: ("image_ref", "draft"),
}

_REDIRECTS: dict[str, tuple[FlowStep, str]] = {
    "image_ref": (FlowStep.CAPTURE, "Image required"),
    "result": (FlowStep.PROCESSING, "Processing result required"),
    "draft": (FlowStep.REVIEW, "Draft required"),
}


def missing_requirements(flow: Flow, step: FlowStep) -> list[str]:
    """Return the names of data the flow still lacks for ``step``."""
    return [field for field in STEP_REQUIREMENTS[step] if not getattr(flow, field)]


def check_navigation(flow: Flow | None, step: FlowStep) -> NavigationGuardResult:
    """Evaluate whether ``flow`` may move to ``step``."""
    if flow is None:
        if step == FlowStep.CAPTURE:
            return NavigationGuardResult(allowed=True)
        return NavigationGuardResult(
            allowed=False,
            reason="No active flow",
            suggested_action=NavigationAction(
                type="redirect",
                target=FlowStep.CAPTURE,
                message="Start by capturing a receipt",
            ),
        )

    missing = missing_requirements(flow, step)
    if not missing:
        return NavigationGuardResult(allowed=True)

    target, reason = _REDIRECTS[missing[0]]
    action_type = "retry" if target == FlowStep.PROCESSING and flow.can_retry else "redirect"
    return NavigationGuardResult(
        allowed=False,
        reason=reason,
        suggested_action=NavigationAction(type=action_type, target=target, message=reason),
    )
