"""
Control-plane router: a total function from a pipeline result to a decision.

``ROUTES`` holds one handler per ``ReasonCode``. Any unsuccessful result is
a hard stop, except ``uncommitted_changes_blocking``, which gets its own
commit-or-stash prompt. A code outside the vocabulary is treated as a
failure, never passed through.
"""

from __future__ import annotations

from typing import Callable

from loguru import logger

from tierflow.control_plane import handlers
from tierflow.control_plane.types import ControlPlaneContext, ControlPlaneDecision
from tierflow.outcome import Outcome, ReasonCode, WorkflowResult

Handler = Callable[[Outcome, WorkflowResult, ControlPlaneContext], ControlPlaneDecision]

ROUTES: dict[ReasonCode, Handler] = {
    # start
    ReasonCode.START_OK: handlers.handle_success,
    ReasonCode.PLAN_MODE: handlers.handle_plan_mode,
    ReasonCode.VALIDATION_FAILED: handlers.handle_failure,
    ReasonCode.BRANCH_FAILED: handlers.handle_failure,
    ReasonCode.UNCOMMITTED_CHANGES_BLOCKING: handlers.handle_uncommitted_changes,
    ReasonCode.CONTEXT_GATHERING: handlers.handle_context_gathering,
    ReasonCode.APP_CHECK_FAILED: handlers.handle_failure,
    # end: gates
    ReasonCode.RUN_TESTS_REQUIRED: handlers.handle_failure,
    ReasonCode.GOVERNANCE_GATE_FAILED: handlers.handle_failure,
    ReasonCode.LINT_OR_TYPECHECK_FAILED: handlers.handle_failure,
    ReasonCode.TEST_GOAL_VALIDATION_FAILED: handlers.handle_failure,
    ReasonCode.TEST_GOAL_CHECK_FAILED: handlers.handle_failure,
    # end: test run
    ReasonCode.TEST_FIX_PERMISSION_REQUIRED: handlers.handle_failure,
    ReasonCode.TEST_CODE_FIX_REQUIRED: handlers.handle_failure,
    ReasonCode.APP_CODE_TEST_FAILED: handlers.handle_failure,
    ReasonCode.TESTS_FAILED: handlers.handle_failure,
    ReasonCode.TEST_ANALYSIS_FAILED: handlers.handle_failure,
    ReasonCode.TEST_RUN_FAILED: handlers.handle_failure,
    # end: bookkeeping and version control
    ReasonCode.COMMENT_CLEANUP_FAILED: handlers.handle_failure,
    ReasonCode.GIT_FAILED: handlers.handle_failure,
    ReasonCode.AUTOFIX_COMMIT_FAILED: handlers.handle_failure,
    ReasonCode.VERIFICATION_WORK_SUGGESTED: handlers.handle_verification,
    # end: success
    ReasonCode.PENDING_PUSH_CONFIRMATION: handlers.handle_pending_push,
    ReasonCode.TASK_COMPLETE: handlers.handle_success,
    ReasonCode.END_OK: handlers.handle_success,
    # reopen
    ReasonCode.REOPEN_OK: handlers.handle_reopen,
    ReasonCode.UNHANDLED_ERROR: handlers.handle_failure,
}


def route_by_outcome(result: WorkflowResult | None, ctx: ControlPlaneContext) -> ControlPlaneDecision:
    if result is None:
        return handlers.handle_missing_outcome("")
    outcome = result.outcome

    try:
        code = ReasonCode(outcome.reason_code)
    except ValueError:
        logger.warning(f"[CONTROL] Unknown reason code {outcome.reason_code!r}; treating as failure")
        return handlers.handle_failure(outcome, result, ctx)

    if not result.success and code != ReasonCode.UNCOMMITTED_CHANGES_BLOCKING:
        decision = handlers.handle_failure(outcome, result, ctx)
    else:
        decision = ROUTES[code](outcome, result, ctx)
    logger.debug(
        f"[CONTROL] {ctx.level.value}-{ctx.action} {code.value}: "
        f"stop={decision.stop} question={decision.question_key.value if decision.question_key else None}"
    )
    return decision
