"""
Reopen pipeline: bring a completed unit back into progress.

validate (must be Complete) -> plan-mode exit -> ensure branch -> write
Reopened status + log entry -> record scope -> next action.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tierflow.descriptors import UnitDescriptor
from tierflow.documents import Status
from tierflow.mode import ExecutionMode, is_plan_mode
from tierflow.outcome import (
    OutcomeStatus,
    ReasonCode,
    WorkflowResult,
    build_outcome,
    exit_result,
    render_command,
)
from tierflow.scope import ScopeEntry
from tierflow.services import Services
from tierflow.workflow import planning
from tierflow.workflow.context import OutputBuffer, writes
from tierflow.workflow.engine import run_pipeline
from tierflow.workflow.hooks import ReopenHooks


@dataclass
class ReopenContext:
    descriptor: UnitDescriptor
    identifier: str
    resolved_display_id: str
    mode: ExecutionMode
    services: Services
    reason: str
    output: OutputBuffer = field(default_factory=OutputBuffer)
    previous_status: Status | None = None

    @property
    def level(self):
        return self.descriptor.level

    @property
    def project(self):
        return self.services.project


def _command(ctx: ReopenContext) -> str:
    return f"/{ctx.descriptor.command_name('reopen')} {ctx.identifier}"


@writes("previous_status")
def step_reopen_validate(ctx: ReopenContext, hooks: ReopenHooks) -> WorkflowResult | None:
    ctx.output.append(f"# {ctx.level.title} {ctx.resolved_display_id} Reopen")
    if ctx.descriptor.parse_identifier(ctx.identifier) is None:
        message = f"Invalid {ctx.level.value} identifier `{ctx.identifier}` (expected {ctx.descriptor.id_format})."
    else:
        ctx.previous_status = ctx.descriptor.control_document.read_status(ctx.project, ctx.identifier)
        if ctx.previous_status == Status.COMPLETE:
            return None
        found = ctx.previous_status.value if ctx.previous_status else "no status"
        message = f"{ctx.level.title} {ctx.identifier} is not complete ({found}); only completed units can be reopened."
    ctx.output.append(message)
    return exit_result(
        ctx.output.text(), OutcomeStatus.BLOCKED, ReasonCode.VALIDATION_FAILED,
        f"Check the {ctx.level.value} status, then retry {_command(ctx)}.",
    )


@writes()
def step_reopen_plan_exit(ctx: ReopenContext, hooks: ReopenHooks) -> WorkflowResult | None:
    if not is_plan_mode(ctx.mode):
        return None
    steps = [
        f"Set {ctx.level.value} {ctx.identifier} status to Reopened",
        f"Append a reopen entry to the {ctx.level.value} log",
        f"Record {ctx.level.value} {ctx.identifier} as the active scope",
    ]
    if hooks.ensure_branch:
        steps.insert(0, f"Ensure the {ctx.level.value} branch is checked out")
    ctx.output.append(planning.format_plan_mode_preview(f"{ctx.descriptor.command_name('reopen')} {ctx.identifier}", steps))
    return exit_result(
        ctx.output.text(), OutcomeStatus.PLAN, ReasonCode.PLAN_MODE,
        f"Review the plan, then re-run {_command(ctx)} in execute mode.",
        success=True, deliverables="\n".join(f"- {s}" for s in steps),
    )


@writes()
def step_reopen_branch(ctx: ReopenContext, hooks: ReopenHooks) -> WorkflowResult | None:
    if not hooks.ensure_branch:
        return None
    branch = hooks.ensure_branch(ctx)
    ctx.output.append("\n".join(f"- {m}" for m in branch.messages))
    if branch.success:
        return None
    if branch.blocked_by_uncommitted:
        return exit_result(
            ctx.output.text(), OutcomeStatus.BLOCKED, ReasonCode.UNCOMMITTED_CHANGES_BLOCKING,
            f"Commit or stash the changes, then re-run {_command(ctx)}.",
            deliverables="\n".join(f"- `{f}`" for f in branch.dirty_files) or None,
        )
    return exit_result(
        ctx.output.text(), OutcomeStatus.FAILED, ReasonCode.BRANCH_FAILED,
        "Resolve the branch problem above, then retry.",
    )


@writes()
def step_reopen_mark(ctx: ReopenContext, hooks: ReopenHooks) -> None:
    control = ctx.descriptor.control_document
    control.write_status(ctx.project, ctx.identifier, Status.REOPENED)
    ctx.descriptor.append_log(ctx.project, ctx.identifier, "Reopen", f"**Reason:** {ctx.reason or 'not given'}")
    ctx.output.append(f"Status: {Status.COMPLETE.value} -> {Status.REOPENED.value}")
    return None


@writes()
def step_reopen_scope(ctx: ReopenContext, hooks: ReopenHooks) -> None:
    ctx.services.scope.update(ctx.level, ScopeEntry(id=ctx.identifier, name=ctx.resolved_display_id))
    ctx.output.append(f"**{ctx.level.title} {ctx.identifier} reopened.**")
    return None


@writes()
def step_reopen_finish(ctx: ReopenContext, hooks: ReopenHooks) -> WorkflowResult:
    if ctx.descriptor.replan_handler:
        command = render_command(ctx.descriptor.replan_handler(ctx.identifier))
        next_action = f"Re-plan the remaining work with `{command}`."
    else:
        next_action = f"Continue work on {ctx.level.value} {ctx.identifier}."
    ctx.output.append(f"**Next:** {next_action}")
    return WorkflowResult(
        success=True,
        output=ctx.output.text(),
        outcome=build_outcome(OutcomeStatus.COMPLETED, ReasonCode.REOPEN_OK, next_action),
    )


REOPEN_STEPS = (
    step_reopen_validate,
    step_reopen_plan_exit,
    step_reopen_branch,
    step_reopen_mark,
    step_reopen_scope,
)


def run_reopen_workflow(ctx: ReopenContext, hooks: ReopenHooks) -> WorkflowResult:
    return run_pipeline("reopen", REOPEN_STEPS, step_reopen_finish, ctx, hooks)
