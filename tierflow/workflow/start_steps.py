"""
Start pipeline steps.

Each step takes ``(ctx, hooks)`` and returns ``None`` to continue or a
``WorkflowResult`` to stop the pipeline. ``@writes`` names the context
fields a step may assign.
"""

from __future__ import annotations

from loguru import logger

from tierflow.auditor.engine import format_report
from tierflow.cascade import resolve_start_cascade
from tierflow.mode import is_plan_mode
from tierflow.outcome import (
    OutcomeStatus,
    ReasonCode,
    WorkflowResult,
    build_outcome,
    exit_result,
    render_command,
)
from tierflow.workflow import planning
from tierflow.workflow.context import StartContext, writes
from tierflow.workflow.hooks import StartHooks
from tierflow.workspace import WorkspaceError


def _command(ctx: StartContext) -> str:
    return f"/{ctx.descriptor.command_name('start')} {ctx.identifier}"


def _exit(
    ctx: StartContext,
    status: OutcomeStatus,
    code: ReasonCode,
    next_action: str,
    *,
    success: bool = False,
    deliverables: str | None = None,
) -> WorkflowResult:
    return exit_result(ctx.output.text(), status, code, next_action, success=success, deliverables=deliverables)


@writes()
def step_append_header(ctx: StartContext, hooks: StartHooks) -> None:
    ctx.output.extend(hooks.build_header(ctx))
    if hooks.branch_hierarchy:
        ctx.output.append(hooks.branch_hierarchy(ctx))
    return None


@writes()
def step_validate(ctx: StartContext, hooks: StartHooks) -> WorkflowResult | None:
    result = hooks.validate(ctx)
    if result.can_start:
        return None
    if is_plan_mode(ctx.mode):
        # Plan mode only previews; the problem is reported in the plan.
        ctx.validation_notes.append(result.message)
        return None
    ctx.output.append(f"## Cannot start {ctx.level.value} {ctx.resolved_display_id}\n\n{result.message}")
    return _exit(
        ctx,
        OutcomeStatus.BLOCKED,
        ReasonCode.VALIDATION_FAILED,
        f"Fix the problem above, then re-run {_command(ctx)}.",
    )


@writes()
def step_plan_mode_exit(ctx: StartContext, hooks: StartHooks) -> WorkflowResult | None:
    if not is_plan_mode(ctx.mode):
        return None
    steps = hooks.plan_mode_steps(ctx)
    title = f"{ctx.descriptor.command_name('start')} {ctx.resolved_display_id}"
    ctx.output.append(planning.format_plan_mode_preview(title, steps, ctx.validation_notes))
    deliverables = hooks.plan_deliverables(ctx) if hooks.plan_deliverables else "\n".join(f"- {s}" for s in steps)
    return _exit(
        ctx,
        OutcomeStatus.PLAN,
        ReasonCode.PLAN_MODE,
        f"Review the plan, then re-run {_command(ctx)} in execute mode.",
        success=True,
        deliverables=deliverables,
    )


@writes()
def step_ensure_branch(ctx: StartContext, hooks: StartHooks) -> WorkflowResult | None:
    if hooks.ensure_branch:
        branch = hooks.ensure_branch(ctx)
        ctx.output.append("\n".join(f"- {m}" for m in branch.messages))
        if not branch.success:
            if branch.blocked_by_uncommitted:
                files = "\n".join(f"- `{f}`" for f in branch.dirty_files) or None
                return _exit(
                    ctx,
                    OutcomeStatus.BLOCKED,
                    ReasonCode.UNCOMMITTED_CHANGES_BLOCKING,
                    f"Commit or stash the changes, then re-run {_command(ctx)}.",
                    deliverables=files,
                )
            return _exit(
                ctx,
                OutcomeStatus.FAILED,
                ReasonCode.BRANCH_FAILED,
                "Resolve the branch problem above, then retry.",
            )
    if hooks.after_branch:
        ctx.output.append(hooks.after_branch(ctx))
    return None


@writes()
def step_ensure_child_docs(ctx: StartContext, hooks: StartHooks) -> None:
    if is_plan_mode(ctx.mode) or not hooks.ensure_child_docs:
        return None
    created = hooks.ensure_child_docs(ctx)
    if created:
        ctx.output.append("**Documents created:**\n" + "\n".join(f"- `{p}`" for p in created))
    return None


@writes("read_result")
def step_read_context(ctx: StartContext, hooks: StartHooks) -> None:
    if not hooks.read_context:
        return None
    result = hooks.read_context(ctx)
    ctx.read_result = result
    if result is None:
        return None
    if result.handoff:
        ctx.output.append(f"## {result.label or 'Handoff'}\n\n{result.handoff.strip()}")
    if result.document:
        heading = result.section_title or f"{ctx.level.title} Guide"
        ctx.output.append(f"## {heading}\n\n{result.document.strip()}")
    return None


@writes()
def step_gather_context(ctx: StartContext, hooks: StartHooks) -> None:
    if hooks.gather_context:
        ctx.output.append(hooks.gather_context(ctx))
    return None


@writes()
def step_inject_governance(ctx: StartContext, hooks: StartHooks) -> None:
    if hooks.governance_context:
        ctx.output.append(hooks.governance_context(ctx))
    return None


@writes("planning_document_path")
def step_context_gathering(ctx: StartContext, hooks: StartHooks) -> WorkflowResult | None:
    if not hooks.context_questions or ctx.options.context_gathering_complete:
        return None
    questions = hooks.context_questions(ctx)
    if not questions:
        return None
    ctx.planning_document_path = planning.write_planning_document(ctx, questions)
    ctx.output.append(planning.format_questions(questions, ctx.planning_document_path))
    result = _exit(
        ctx,
        OutcomeStatus.PLAN,
        ReasonCode.CONTEXT_GATHERING,
        f"Answer the questions in `{ctx.planning_document_path}`, then re-run {_command(ctx)} "
        "with contextGatheringComplete set.",
        success=True,
        deliverables="\n".join(f"- {q}" for q in questions),
    )
    result.planning_document_path = ctx.planning_document_path
    return result


@writes()
def step_run_extras(ctx: StartContext, hooks: StartHooks) -> None:
    if hooks.run_extras:
        ctx.output.append(hooks.run_extras(ctx))
    return None


@writes()
def step_start_audit(ctx: StartContext, hooks: StartHooks) -> None:
    if not hooks.run_start_audit or not ctx.services.config.audit.enabled:
        return None
    services = ctx.services
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    try:
        files = services.git.changed_files(parent)
        report = services.auditor.run_start_audit(ctx.level, ctx.identifier, files)
    except (WorkspaceError, OSError) as e:
        logger.warning(f"[START] Start audit skipped: {e}")
        ctx.output.append(f"**Warning:** start audit skipped ({e}).")
        return None
    ctx.output.append(format_report(report, "Start Audit"))
    return None


@writes()
def step_run_level_plan(ctx: StartContext, hooks: StartHooks) -> None:
    plan = hooks.plan_level(ctx) if hooks.plan_level else planning.run_level_plan(ctx)
    ctx.output.append(plan)
    return None


@writes()
def step_fill_direct_children(ctx: StartContext, hooks: StartHooks) -> None:
    if is_plan_mode(ctx.mode) or not hooks.fill_children:
        return None
    ctx.output.append(hooks.fill_children(ctx))
    return None


@writes()
def step_build_start_cascade(ctx: StartContext, hooks: StartHooks) -> WorkflowResult:
    child = hooks.first_child(ctx) if hooks.first_child else None
    cascade = resolve_start_cascade(
        ctx.level,
        child.identifier if child else None,
        child.started if child else False,
    )
    next_action = hooks.next_action(ctx) if hooks.next_action else None
    if not next_action:
        next_action = f'Proceed with {ctx.level.value} "{ctx.resolved_display_id}" using the plan above.'
    if cascade:
        ctx.output.append(f"**Next:** `{render_command(cascade.invoke)}`")
    return WorkflowResult(
        success=True,
        output=ctx.output.text(),
        outcome=build_outcome(OutcomeStatus.COMPLETED, ReasonCode.START_OK, next_action, cascade=cascade),
        planning_document_path=ctx.planning_document_path,
    )
