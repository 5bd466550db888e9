"""
End pipeline steps.

Same contract as the start steps: ``None`` continues, a ``WorkflowResult``
stops the pipeline. Exiting hooks report a ``HookResult``; the step fills in
its own default reason code and status when the hook leaves them unset.
"""

from __future__ import annotations

from loguru import logger

from tierflow.auditor.engine import format_report
from tierflow.cascade import resolve_end_cascade
from tierflow.levels import Level
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
from tierflow.workflow.context import EndContext, writes
from tierflow.workflow.hooks import EndHooks, HookResult


def _command(ctx: EndContext) -> str:
    return f"/{ctx.descriptor.command_name('end')} {ctx.identifier}"


def _exit(
    ctx: EndContext,
    status: OutcomeStatus,
    code: ReasonCode,
    next_action: str,
    *,
    success: bool = False,
    deliverables: str | None = None,
) -> WorkflowResult:
    return exit_result(
        ctx.output.text(), status, code, next_action,
        success=success, deliverables=deliverables, steps=ctx.step_results,
    )


def _run_exiting(
    ctx: EndContext,
    name: str,
    hook,
    default_code: ReasonCode,
    default_status: OutcomeStatus = OutcomeStatus.BLOCKED_FIX_REQUIRED,
) -> WorkflowResult | None:
    result: HookResult = hook(ctx)
    ctx.record(name, result.success, result.output)
    ctx.output.append(result.output)
    if result.success:
        return None
    return _exit(
        ctx,
        result.status or default_status,
        result.reason_code or default_code,
        result.next_action or f"Fix the problem above, then re-run {_command(ctx)}.",
        deliverables=result.deliverables,
    )


@writes()
def step_end_plan_exit(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not is_plan_mode(ctx.mode):
        return None
    steps = hooks.plan_mode_steps(ctx)
    title = f"{ctx.descriptor.command_name('end')} {ctx.identifier}"
    ctx.output.append(planning.format_plan_mode_preview(title, steps))
    return _exit(
        ctx,
        OutcomeStatus.PLAN,
        ReasonCode.PLAN_MODE,
        f"Review the plan, then re-run {_command(ctx)} in execute mode.",
        success=True,
        deliverables="\n".join(f"- {s}" for s in steps),
    )


@writes("should_run_tests")
def step_resolve_run_tests(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    testing = ctx.services.config.testing
    explicit = ctx.params.run_tests
    requires_explicit = hooks.require_explicit_run_tests or ctx.level in testing.require_explicit
    if explicit is None and requires_explicit:
        ctx.output.append(f"**runTests is required for {ctx.level.value}-end.**")
        return _exit(
            ctx,
            OutcomeStatus.BLOCKED_NEEDS_INPUT,
            ReasonCode.RUN_TESTS_REQUIRED,
            "Set runTests (true/false) to continue.",
        )
    should_run = explicit if explicit is not None else testing.default_run_tests
    if should_run and not testing.enabled:
        ctx.output.append("Testing is disabled in config; skipping tests.")
        should_run = False
    ctx.should_run_tests = bool(should_run)
    return None


@writes()
def step_pre_work(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not hooks.pre_work:
        return None
    return _run_exiting(ctx, "pre_work", hooks.pre_work, ReasonCode.GOVERNANCE_GATE_FAILED)


@writes()
def step_test_goal_validation(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not ctx.should_run_tests or not hooks.test_goal_validation:
        return None
    if not ctx.services.config.testing.validate_goals:
        return None
    return _run_exiting(
        ctx, "test_goal_validation", hooks.test_goal_validation, ReasonCode.TEST_GOAL_VALIDATION_FAILED
    )


@writes()
def step_run_tests(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not ctx.should_run_tests or not hooks.run_tests:
        ctx.record("tests", True, "skipped")
        return None
    return _run_exiting(ctx, "tests", hooks.run_tests, ReasonCode.TESTS_FAILED)


@writes()
def step_mid_work(ctx: EndContext, hooks: EndHooks) -> None:
    if hooks.mid_work:
        output = hooks.mid_work(ctx)
        ctx.record("mid_work", True, output or "")
        ctx.output.append(output)
    return None


@writes()
def step_comment_cleanup(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not hooks.comment_cleanup:
        return None
    return _run_exiting(
        ctx, "comment_cleanup", hooks.comment_cleanup, ReasonCode.COMMENT_CLEANUP_FAILED, OutcomeStatus.FAILED
    )


@writes()
def step_doc_cleanup(ctx: EndContext, hooks: EndHooks) -> None:
    if not hooks.doc_cleanup:
        return None
    try:
        ctx.output.append(hooks.doc_cleanup(ctx))
    except OSError as e:
        logger.warning(f"[END] Documentation cleanup failed: {e}")
        ctx.output.append(f"**Warning:** documentation cleanup failed ({e}).")
    return None


@writes()
def step_git(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if ctx.params.skip_git:
        ctx.output.append("Version control skipped (skipGit).")
        ctx.record("git", True, "skipped")
        return None
    if not hooks.git:
        return None
    return _run_exiting(ctx, "git", hooks.git, ReasonCode.GIT_FAILED, OutcomeStatus.FAILED)


@writes()
def step_verification_check(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not hooks.verification_check or ctx.params.continue_past_verification:
        return None
    items = hooks.verification_check(ctx)
    if not items:
        return None
    checklist = "\n".join(f"- [ ] {item}" for item in items)
    ctx.output.append(f"## Suggested Verification\n\n{checklist}")
    return _exit(
        ctx,
        OutcomeStatus.COMPLETED,
        ReasonCode.VERIFICATION_WORK_SUGGESTED,
        "Add a follow-up task, verify manually, or re-run with continuePastVerification.",
        success=True,
        deliverables=checklist,
    )


@writes("audit_payload", "autofix_result")
def step_end_audit(ctx: EndContext, hooks: EndHooks) -> None:
    if not hooks.run_end_audit or not ctx.services.config.audit.enabled:
        return None
    payload = hooks.before_audit(ctx) if hooks.before_audit else {"files": list(ctx.params.modified_files)}
    ctx.audit_payload = payload
    try:
        report = ctx.services.auditor.run_end_audit(ctx.level, ctx.identifier, payload)
    except OSError as e:
        logger.warning(f"[END] End audit failed: {e}")
        ctx.output.append(f"**Warning:** end audit failed ({e}).")
        return None
    ctx.autofix_result = report.autofix_result
    ctx.record("audit", report.status != "fail", report.summary)
    ctx.output.append(format_report(report, "End Audit"))
    return None


@writes()
def step_after_audit(ctx: EndContext, hooks: EndHooks) -> WorkflowResult | None:
    if not hooks.after_audit:
        return None
    return _run_exiting(ctx, "after_audit", hooks.after_audit, ReasonCode.AUTOFIX_COMMIT_FAILED, OutcomeStatus.FAILED)


@writes()
def step_clear_scope(ctx: EndContext, hooks: EndHooks) -> None:
    if not hooks.clear_scope:
        return None
    scope = ctx.services.scope
    if ctx.level == Level.FEATURE:
        scope.clear()
        ctx.output.append("Scope cleared.")
    else:
        update = scope.update(ctx.level, None)
        ctx.output.append(" ".join(update.messages))
    return None


@writes("outcome")
def step_build_end_cascade(ctx: EndContext, hooks: EndHooks) -> WorkflowResult:
    state = hooks.cascade(ctx) if hooks.cascade else None
    cascade = None
    if state is not None:
        cascade = resolve_end_cascade(
            ctx.level,
            next_sibling_id=state.next_sibling_id,
            next_sibling_complete=state.next_sibling_complete,
            parent_id=state.parent_id,
            all_siblings_complete=state.all_siblings_complete,
        )
    success = hooks.success_outcome(ctx)
    if cascade:
        ctx.output.append(f"**Next:** `{render_command(cascade.invoke)}`")
    ctx.outcome = build_outcome(success.status, success.reason_code, success.next_action, cascade=cascade)
    return WorkflowResult(
        success=True,
        output=ctx.output.text(),
        outcome=ctx.outcome,
        steps=dict(ctx.step_results),
    )
