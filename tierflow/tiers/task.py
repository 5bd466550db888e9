"""
Task level: a section of its session guide (``#### Task X.Y.Z.N: title``).

Tasks own no branch or documents. They work on the session branch, commit
with the scope prefix and pass a governance gate before committing.
"""

from __future__ import annotations

from tierflow.documents import Status
from tierflow.identifiers import parent_id
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.tiers import common
from tierflow.workflow.hooks import EndHooks, ReopenHooks, StartHooks, SuccessOutcome
from tierflow.workspace.branches import build_branch_chain, ensure_level_branch


def _session_id(ctx) -> str:
    return parent_id(Level.TASK, ctx.identifier)


def _ensure_session_branch(ctx):
    chain = build_branch_chain(ctx.project, Level.SESSION, _session_id(ctx))
    return ensure_level_branch(ctx.services.git, chain, ctx.services.config.git.root_branches)


def _start_plan(ctx) -> list[str]:
    return [
        f"Check out the session {_session_id(ctx)} branch",
        f"Record task {ctx.identifier} as the active scope and mark it {Status.IN_PROGRESS.value}",
        "Show the task section and the session handoff",
        "Inject recent audit findings as governance context",
        "Summarise the task's files, approach and checkpoint",
    ]


def _next_action(ctx) -> str:
    return f"Implement task {ctx.identifier}, then run `/task-end {ctx.identifier}`."


def start_hooks() -> StartHooks:
    return StartHooks(
        build_header=common.build_header,
        validate=common.validate_unit,
        plan_mode_steps=_start_plan,
        ensure_branch=_ensure_session_branch,
        after_branch=common.record_scope,
        read_context=common.read_context,
        governance_context=common.governance_context,
        next_action=_next_action,
    )


# ---------------------------------------------------------------------------
# End
# ---------------------------------------------------------------------------

def _end_plan(ctx) -> list[str]:
    return [
        "Run the governance gate on the modified files",
        "Validate test goals and run the tests if runTests is set",
        f"Mark task {ctx.identifier} {Status.COMPLETE.value} and log it in the session log",
        "Strip debug comments from modified files",
        "Commit with the task prefix",
        "Clear the task from the scope",
        "Suggest the next task (or the session end)",
    ]


def _git(ctx):
    return common.commit(ctx, f"complete task {ctx.identifier}")


def _success(ctx) -> SuccessOutcome:
    return SuccessOutcome(OutcomeStatus.COMPLETED, ReasonCode.TASK_COMPLETE, f"Task {ctx.identifier} complete.")


def end_hooks() -> EndHooks:
    return EndHooks(
        plan_mode_steps=_end_plan,
        success_outcome=_success,
        pre_work=common.governance_gate,
        test_goal_validation=common.test_goal_validation,
        run_tests=common.run_tests,
        mid_work=common.mark_complete,
        comment_cleanup=common.comment_cleanup,
        git=_git,
        cascade=common.sibling_state,
    )


def reopen_hooks() -> ReopenHooks:
    return ReopenHooks(ensure_branch=_ensure_session_branch)
