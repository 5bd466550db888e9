"""
End pipeline orchestrator.

Fixed order: plan-mode exit, resolve runTests, pre-work, test-goal
validation, tests, verification check, mid-work, comment cleanup,
documentation cleanup, version control, end audit, post-audit commit,
scope clearing, cascade. Nothing has been marked, committed or merged when
the verification check pauses.
"""

from __future__ import annotations

from tierflow.outcome import WorkflowResult
from tierflow.workflow.context import EndContext
from tierflow.workflow.end_steps import (
    step_after_audit,
    step_build_end_cascade,
    step_clear_scope,
    step_comment_cleanup,
    step_doc_cleanup,
    step_end_audit,
    step_end_plan_exit,
    step_git,
    step_mid_work,
    step_pre_work,
    step_resolve_run_tests,
    step_run_tests,
    step_test_goal_validation,
    step_verification_check,
)
from tierflow.workflow.engine import run_pipeline
from tierflow.workflow.hooks import EndHooks

END_STEPS = (
    step_end_plan_exit,
    step_resolve_run_tests,
    step_pre_work,
    step_test_goal_validation,
    step_run_tests,
    step_verification_check,
    step_mid_work,
    step_comment_cleanup,
    step_doc_cleanup,
    step_git,
    step_end_audit,
    step_after_audit,
    step_clear_scope,
)


def run_end_workflow(ctx: EndContext, hooks: EndHooks) -> WorkflowResult:
    return run_pipeline("end", END_STEPS, step_build_end_cascade, ctx, hooks)
