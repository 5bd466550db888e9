"""
One handler per decision shape. Handlers only build a ``ControlPlaneDecision``;
they have no side effects.

Every handler takes ``(outcome, result, ctx)`` so the router can hold them in
a single table.
"""

from __future__ import annotations

from tierflow.control_plane.types import (
    ControlPlaneContext,
    ControlPlaneDecision,
    NextInvoke,
    QuestionKey,
)
from tierflow.outcome import Outcome, WorkflowResult


def _reinvoke(ctx: ControlPlaneContext, **overrides) -> NextInvoke:
    return NextInvoke(
        level=ctx.level,
        action=ctx.action,
        identifier=ctx.identifier,
        params={**ctx.original_params, **overrides},
    )


def handle_plan_mode(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.deliverables or outcome.next_action,
        question_key=QuestionKey.APPROVE_EXECUTE,
        next_invoke=_reinvoke(ctx, mode="execute"),
    )


def handle_context_gathering(
    outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext
) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.deliverables or outcome.next_action,
        question_key=QuestionKey.CONTEXT_GATHERING,
        next_invoke=_reinvoke(ctx, mode="execute", contextGatheringComplete=True),
    )


def handle_pending_push(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.next_action,
        question_key=QuestionKey.PUSH_CONFIRMATION,
        cascade_command=outcome.cascade.command if outcome.cascade else None,
    )


def handle_verification(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.deliverables or outcome.next_action,
        question_key=QuestionKey.VERIFICATION_OPTIONS,
        next_invoke=_reinvoke(ctx, continuePastVerification=True),
    )


def handle_failure(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    """Hard stop with the standard retry / investigate / skip menu. Never cascades."""
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.next_action or result.output,
        question_key=QuestionKey.FAILURE_OPTIONS,
    )


def handle_missing_outcome(output: str) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=output or "Command finished without an outcome.",
        question_key=QuestionKey.FAILURE_OPTIONS,
    )


def handle_success(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    """Ask before following a cascade; with no cascade the caller just continues."""
    if outcome.cascade is not None:
        return ControlPlaneDecision(
            stop=True,
            required_mode="plan",
            message=outcome.next_action,
            question_key=QuestionKey.CASCADE,
            cascade_command=outcome.cascade.command,
            next_invoke=NextInvoke(
                level=outcome.cascade.invoke.level,
                action=outcome.cascade.invoke.action,
                identifier=outcome.cascade.invoke.identifier,
                params=dict(outcome.cascade.invoke.options),
            ),
        )
    return ControlPlaneDecision(stop=False, required_mode="agent", message=outcome.next_action)


def handle_reopen(outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.next_action,
        question_key=QuestionKey.REOPEN_OPTIONS,
    )


def handle_uncommitted_changes(
    outcome: Outcome, result: WorkflowResult, ctx: ControlPlaneContext
) -> ControlPlaneDecision:
    # The operator commits or stashes out of band, then the same call is retried unchanged.
    return ControlPlaneDecision(
        stop=True,
        required_mode="plan",
        message=outcome.deliverables or outcome.next_action,
        question_key=QuestionKey.UNCOMMITTED_CHANGES,
        next_invoke=_reinvoke(ctx),
    )
