"""Phase level: a numbered slice of a feature (``X.Y``), merged into the feature branch."""

from __future__ import annotations

from tierflow.descriptors import SESSION
from tierflow.documents import Status, find_section
from tierflow.identifiers import child_ids_in
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.tiers import common
from tierflow.workflow import planning
from tierflow.workflow.hooks import EndHooks, ReopenHooks, StartHooks, SuccessOutcome


def _branch(ctx) -> str:
    return ctx.descriptor.branch_name(ctx.project, ctx.identifier)


def _start_plan(ctx) -> list[str]:
    return [
        f"Create or check out `{_branch(ctx)}` from `feature/{ctx.project.feature_name}`",
        f"Record phase {ctx.identifier} as the active scope and mark it {Status.IN_PROGRESS.value}",
        "Create guides for the sessions declared in the phase guide",
        "Show the phase guide and handoff",
        "Ask any open questions from the phase guide",
        "Summarise the sessions and pre-fill their placeholder fields",
    ]


def _ensure_own_guide(ctx) -> None:
    _, feature_guide = common.parent_guide(ctx)
    section = find_section(feature_guide or "", Level.PHASE, ctx.identifier)
    title = f": {section.title}" if section and section.title else ""
    common.ensure_documents(ctx, [(
        ctx.descriptor.document_paths(ctx.project, ctx.identifier).guide,
        f"# Phase {ctx.identifier}{title}\n\n**Status:** {Status.NOT_STARTED.value}\n\n## Sessions\n",
    )])


def _after_branch(ctx) -> str:
    _ensure_own_guide(ctx)
    return common.record_scope(ctx)


def _child_docs(ctx) -> list[str]:
    guide = ctx.project.read_optional(ctx.descriptor.document_paths(ctx.project, ctx.identifier).guide) or ""
    docs = []
    for session_id in child_ids_in(guide, Level.SESSION, ctx.identifier):
        section = find_section(guide, Level.SESSION, session_id)
        title = f": {section.title}" if section and section.title else ""
        docs.append((
            SESSION.document_paths(ctx.project, session_id).guide,
            f"# Session {session_id}{title}\n\n**Status:** {Status.NOT_STARTED.value}\n\n## Tasks\n",
        ))
    return common.ensure_documents(ctx, docs)


def start_hooks() -> StartHooks:
    return StartHooks(
        build_header=common.build_header,
        validate=common.validate_unit,
        plan_mode_steps=_start_plan,
        branch_hierarchy=common.branch_hierarchy,
        ensure_branch=common.ensure_branch,
        after_branch=_after_branch,
        ensure_child_docs=_child_docs,
        read_context=common.read_context,
        gather_context=common.gather_changed_files,
        governance_context=common.governance_context,
        context_questions=common.open_questions,
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
        "Validate test goals and run the test suite if runTests is set",
        f"Mark phase {ctx.identifier} {Status.COMPLETE.value} and write the handoff",
        "Remove the phase planning document",
        f"Commit and merge `{_branch(ctx)}` into `{parent}`",
        "Check the phase guide for open verification items",
        "Run the end audit and commit any autofixes",
        "Clear the phase from the scope",
        "Suggest the next phase (or the feature end)",
    ]
    return steps


def _finish(ctx) -> str:
    done = common.mark_complete(ctx)
    sessions = planning.list_children(ctx.project, Level.PHASE, ctx.identifier)
    summary = "\n".join(f"- Session {sid}: {title} ({s.value if s else '?'})" for sid, title, s in sessions)
    common.write_handoff(ctx, f"**Status:** {Status.COMPLETE.value}\n\n## Sessions\n\n{summary or '- none'}")
    return done


def _git(ctx):
    return common.merge_into_parent(ctx, f"complete phase {ctx.identifier}")


def _success(ctx) -> SuccessOutcome:
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    if ctx.params.push or ctx.params.skip_git:
        return SuccessOutcome(OutcomeStatus.COMPLETED, ReasonCode.END_OK, f"Phase {ctx.identifier} complete.")
    return SuccessOutcome(
        OutcomeStatus.COMPLETED,
        ReasonCode.PENDING_PUSH_CONFIRMATION,
        f"Phase {ctx.identifier} merged into `{parent}`. Push `{parent}` to the remote?",
    )


def end_hooks() -> EndHooks:
    return EndHooks(
        plan_mode_steps=_end_plan,
        success_outcome=_success,
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
