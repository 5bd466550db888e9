"""
Start pipeline orchestrator.

Fixed order: header, validate, plan-mode exit, branch, child documents,
context read, context gather, governance, context-gathering questions,
extras, start audit, same-level plan, child pre-fill, cascade.
"""

from __future__ import annotations

from tierflow.outcome import WorkflowResult
from tierflow.workflow.context import StartContext
from tierflow.workflow.engine import run_pipeline
from tierflow.workflow.hooks import StartHooks
from tierflow.workflow.start_steps import (
    step_append_header,
    step_build_start_cascade,
    step_context_gathering,
    step_ensure_branch,
    step_ensure_child_docs,
    step_fill_direct_children,
    step_gather_context,
    step_inject_governance,
    step_plan_mode_exit,
    step_read_context,
    step_run_extras,
    step_run_level_plan,
    step_start_audit,
    step_validate,
)

START_STEPS = (
    step_append_header,
    step_validate,
    step_plan_mode_exit,
    step_ensure_branch,
    step_ensure_child_docs,
    step_read_context,
    step_gather_context,
    step_inject_governance,
    step_context_gathering,
    step_run_extras,
    step_start_audit,
    step_run_level_plan,
    step_fill_direct_children,
)


def run_start_workflow(ctx: StartContext, hooks: StartHooks) -> WorkflowResult:
    return run_pipeline("start", START_STEPS, step_build_start_cascade, ctx, hooks)
