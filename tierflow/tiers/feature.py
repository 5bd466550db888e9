"""Feature level: the top of the hierarchy, one branch per feature."""

from __future__ import annotations

from tierflow.descriptors import PHASE
from tierflow.documents import Status
from tierflow.identifiers import child_ids_in
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.scope import format_scope_display
from tierflow.tiers import common
from tierflow.workflow import planning
from tierflow.workflow.hooks import EndHooks, HookResult, ReopenHooks, StartHooks, SuccessOutcome


def _start_plan(ctx) -> list[str]:
    return [
        f"Create or check out `feature/{ctx.identifier}`",
        f"Record feature {ctx.identifier} as the active scope and mark it {Status.IN_PROGRESS.value}",
        "Create the feature log, handoff and missing phase guides",
        "Show the feature guide and handoff",
        "Ask any open questions from the feature guide",
        "Summarise the phases and pre-fill their placeholder fields",
    ]


def _child_docs(ctx) -> list[str]:
    paths = ctx.descriptor.document_paths(ctx.project, ctx.identifier)
    guide = ctx.project.read_optional(paths.guide) or ""
    docs = [
        (paths.log, f"# Feature {ctx.identifier} Log\n"),
        (paths.handoff, f"# Feature {ctx.identifier} Handoff\n\nNothing handed off yet.\n"),
    ]
    for phase_id in child_ids_in(guide, Level.PHASE):
        docs.append((
            PHASE.document_paths(ctx.project, phase_id).guide,
            f"# Phase {phase_id}\n\n**Status:** {Status.NOT_STARTED.value}\n\n## Sessions\n",
        ))
    return common.ensure_documents(ctx, docs)


def _extras(ctx) -> str:
    return format_scope_display(ctx.services.scope.read())


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
        governance_context=common.governance_context,
        context_questions=common.open_questions,
        run_extras=_extras,
        fill_children=planning.fill_direct_children,
        first_child=common.first_child,
    )


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------

def _end_plan(ctx) -> list[str]:
    steps = ["Run lint/typecheck commands"] if ctx.services.config.verify.commands else []
    steps += [
        "Run the test suite if runTests is set",
        f"Mark feature {ctx.identifier} {Status.COMPLETE.value} and write the handoff",
        "Strip debug comments from modified files",
        f"Commit on `feature/{ctx.identifier}`" + (" and push" if ctx.params.push else ""),
        "Check the feature guide for open verification items",
        "Run the end audit",
        "Clear the scope file",
    ]
    return steps


def _finish(ctx) -> str:
    done = common.mark_complete(ctx)
    phases = planning.list_children(ctx.project, Level.FEATURE, ctx.identifier)
    summary = "\n".join(f"- Phase {pid}: {title} ({status.value if status else '?'})" for pid, title, status in phases)
    common.write_handoff(ctx, f"**Status:** {Status.COMPLETE.value}\n\n## Phases\n\n{summary or '- none'}")
    return done


def _git(ctx) -> HookResult:
    committed = common.commit(ctx, f"complete feature {ctx.identifier}")
    if not committed.success or not ctx.params.push:
        return committed
    pushed = common.push(ctx, f"feature/{ctx.identifier}")
    return HookResult(pushed.success, f"{committed.output}\n{pushed.output}", reason_code=pushed.reason_code)


def _success(ctx) -> SuccessOutcome:
    return SuccessOutcome(
        OutcomeStatus.COMPLETED,
        ReasonCode.END_OK,
        f"Feature {ctx.identifier} complete. Open a pull request for `feature/{ctx.identifier}`.",
    )


def end_hooks() -> EndHooks:
    return EndHooks(
        plan_mode_steps=_end_plan,
        success_outcome=_success,
        pre_work=common.verify_commands,
        run_tests=common.run_tests,
        mid_work=_finish,
        comment_cleanup=common.comment_cleanup,
        doc_cleanup=common.remove_planning_doc,
        git=_git,
        verification_check=common.verification_items,
        run_end_audit=True,
        before_audit=common.before_audit,
        after_audit=common.commit_autofix,
    )


def reopen_hooks() -> ReopenHooks:
    return ReopenHooks(ensure_branch=common.ensure_branch)
