"""Session level: a unit of work (``X.Y.Z``) with its own branch, guide and task list."""

from __future__ import annotations

from tierflow.documents import Status
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.tiers import common
from tierflow.workflow import planning
from tierflow.workflow.hooks import EndHooks, ReopenHooks, StartHooks, SuccessOutcome


def _branch(ctx) -> str:
    return ctx.descriptor.branch_name(ctx.project, ctx.identifier)


def _start_plan(ctx) -> list[str]:
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    return [
        f"Create or check out `{_branch(ctx)}` from `{parent}`",
        f"Record session {ctx.identifier} as the active scope and mark it {Status.IN_PROGRESS.value}",
        "Create the session log and handoff if missing",
        "Show the session guide, handoff and files already changed",
        "Inject recent audit findings as governance context",
        "Ask any open questions from the session guide",
        "Run the start audit",
        "Summarise the tasks and pre-fill their placeholder fields",
    ]


def _child_docs(ctx) -> list[str]:
    paths = ctx.descriptor.document_paths(ctx.project, ctx.identifier)
    return common.ensure_documents(ctx, [
        (paths.log, f"# Session {ctx.identifier} Log\n"),
        (paths.handoff, f"# Session {ctx.identifier} Handoff\n\nNothing handed off yet.\n"),
    ])


def _task_progress(ctx) -> str | None:
    tasks = planning.list_children(ctx.project, Level.SESSION, ctx.identifier)
    if not tasks:
        return None
    done = sum(1 for _, _, status in tasks if status == Status.COMPLETE)
    return f"**Tasks complete:** {done}/{len(tasks)}"


def start_hooks() -> StartHooks:
    return StartHooks(
        build_header=common.build_header,
        validate=common.validate_unit,
        plan_mode_steps=_start_plan,
        branch_hierarchy=common.branch_hierarchy,
        ensure_branch=common.ensure_branch,
        after_branch=common.record_scope,
        ensure_child_docs=_child_docs,
        read_context=common.read_context,
        gather_context=common.gather_changed_files,
        governance_context=common.governance_context,
        context_questions=common.open_questions,
        run_extras=_task_progress,
        run_start_audit=True,
        fill_children=planning.fill_direct_children,
        first_child=common.first_child,
    )


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------

def _end_plan(ctx) -> list[str]:
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    steps = ["Run lint/typecheck commands"] if ctx.services.config.verify.commands else []
    steps += [
        "Validate test goals and run the test suite (runTests is required)",
        f"Mark session {ctx.identifier} {Status.COMPLETE.value} and write the handoff",
        "Strip debug comments from modified files",
        "Remove the session planning document",
        f"Commit and merge `{_branch(ctx)}` into `{parent}`",
        "Check the session guide for open verification items",
        "Run the end audit and commit any autofixes",
        "Clear the session from the scope",
        "Suggest the next session (or the phase end)",
    ]
    return steps


def _finish(ctx) -> str:
    done = common.mark_complete(ctx)
    tasks = planning.list_children(ctx.project, Level.SESSION, ctx.identifier)
    summary = "\n".join(f"- Task {tid}: {title} ({s.value if s else '?'})" for tid, title, s in tasks)
    files = common.modified_files(ctx)
    changed = "\n".join(f"- `{f}`" for f in files) or "- none recorded"
    common.write_handoff(
        ctx, f"**Status:** {Status.COMPLETE.value}\n\n## Tasks\n\n{summary or '- none'}\n\n## Files\n\n{changed}"
    )
    return done


def _git(ctx):
    return common.merge_into_parent(ctx, f"complete session {ctx.identifier}")


def _success(ctx) -> SuccessOutcome:
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    if ctx.params.push or ctx.params.skip_git:
        return SuccessOutcome(OutcomeStatus.COMPLETED, ReasonCode.END_OK, f"Session {ctx.identifier} complete.")
    return SuccessOutcome(
        OutcomeStatus.COMPLETED,
        ReasonCode.PENDING_PUSH_CONFIRMATION,
        f"Session {ctx.identifier} merged into `{parent}`. Push `{parent}` to the remote?",
    )


def end_hooks() -> EndHooks:
    return EndHooks(
        plan_mode_steps=_end_plan,
        success_outcome=_success,
        require_explicit_run_tests=True,
        pre_work=common.verify_commands,
        test_goal_validation=common.test_goal_validation,
        run_tests=common.run_tests,
        mid_work=_finish,
        comment_cleanup=common.comment_cleanup,
        doc_cleanup=common.remove_planning_doc,
        git=_git,
        verification_check=common.verification_items,
        run_end_audit=True,
        before_audit=common.before_audit,
        after_audit=common.commit_autofix,
        cascade=common.sibling_state,
    )


def reopen_hooks() -> ReopenHooks:
    return ReopenHooks(ensure_branch=common.ensure_branch)
