"""
Outcome vocabulary shared by both pipelines and the control plane.

Every pipeline run ends in a ``WorkflowResult`` carrying an ``Outcome``.
``ReasonCode`` is the closed vocabulary the control-plane router is keyed
on; adding a member without adding a route fails the inventory tests.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from tierflow.levels import Level

REASON_CODE_VOCABULARY_VERSION = 3


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    PLAN = "plan"
    BLOCKED = "blocked"
    BLOCKED_NEEDS_INPUT = "blocked_needs_input"
    BLOCKED_FIX_REQUIRED = "blocked_fix_required"
    FAILED = "failed"


class ReasonCode(str, Enum):
    # start
    START_OK = "start_ok"
    PLAN_MODE = "plan_mode"
    VALIDATION_FAILED = "validation_failed"
    BRANCH_FAILED = "branch_failed"
    UNCOMMITTED_CHANGES_BLOCKING = "uncommitted_changes_blocking"
    CONTEXT_GATHERING = "context_gathering"
    APP_CHECK_FAILED = "app_check_failed"

    # end: gates
    RUN_TESTS_REQUIRED = "run_tests_required"
    GOVERNANCE_GATE_FAILED = "governance_gate_failed"
    LINT_OR_TYPECHECK_FAILED = "lint_or_typecheck_failed"
    TEST_GOAL_VALIDATION_FAILED = "test_goal_validation_failed"
    TEST_GOAL_CHECK_FAILED = "test_goal_check_failed"

    # end: test run
    TEST_FIX_PERMISSION_REQUIRED = "test_fix_permission_required"
    TEST_CODE_FIX_REQUIRED = "test_code_fix_required"
    APP_CODE_TEST_FAILED = "app_code_test_failed"
    TESTS_FAILED = "tests_failed"
    TEST_ANALYSIS_FAILED = "test_analysis_failed"
    TEST_RUN_FAILED = "test_run_failed"

    # end: bookkeeping and version control
    COMMENT_CLEANUP_FAILED = "comment_cleanup_failed"
    GIT_FAILED = "git_failed"
    AUTOFIX_COMMIT_FAILED = "autofix_commit_failed"
    VERIFICATION_WORK_SUGGESTED = "verification_work_suggested"

    # end: success
    PENDING_PUSH_CONFIRMATION = "pending_push_confirmation"
    TASK_COMPLETE = "task_complete"
    END_OK = "end_ok"

    # reopen
    REOPEN_OK = "reopen_ok"

    UNHANDLED_ERROR = "unhandled_error"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

CommandAction = Literal["start", "end", "reopen"]


class CommandDescriptor(BaseModel):
    """A structured command; rendering to text happens in ``render_command``."""
    model_config = ConfigDict(frozen=True)

    level: Level
    action: CommandAction
    identifier: str
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return f"{self.level.value}-{self.action}"


def render_command(command: CommandDescriptor) -> str:
    """``/session-end 2.2.1``; options render as ``--key=value`` flags."""
    text = f"/{command.name} {command.identifier}".rstrip()
    for key, value in command.options.items():
        text += f" --{key}={value}"
    return text


# ---------------------------------------------------------------------------
# Outcome + Result
# ---------------------------------------------------------------------------

CascadeDirection = Literal["down", "up", "across"]


class CascadeInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    direction: CascadeDirection
    level: Level
    identifier: str
    command: str
    invoke: CommandDescriptor


class Outcome(BaseModel):
    status: OutcomeStatus
    # Kept as a plain string so unrecognised codes can reach the router.
    reason_code: str
    next_action: str = ""
    deliverables: str | None = None
    cascade: CascadeInfo | None = None


class StepRecord(BaseModel):
    success: bool
    output: str = ""


class WorkflowResult(BaseModel):
    success: bool
    output: str
    outcome: Outcome
    steps: dict[str, StepRecord] = Field(default_factory=dict)
    planning_document_path: str | None = None


def build_outcome(
    status: OutcomeStatus,
    reason_code: ReasonCode | str,
    next_action: str = "",
    deliverables: str | None = None,
    cascade: CascadeInfo | None = None,
) -> Outcome:
    code = reason_code.value if isinstance(reason_code, ReasonCode) else str(reason_code)
    return Outcome(
        status=status,
        reason_code=code,
        next_action=next_action,
        deliverables=deliverables,
        cascade=cascade,
    )


def exit_result(
    output: str,
    status: OutcomeStatus,
    reason_code: ReasonCode,
    next_action: str = "",
    *,
    success: bool = False,
    deliverables: str | None = None,
    steps: dict[str, StepRecord] | None = None,
) -> WorkflowResult:
    """Shorthand for the early-exit results steps return."""
    return WorkflowResult(
        success=success,
        output=output,
        outcome=build_outcome(status, reason_code, next_action, deliverables),
        steps=dict(steps or {}),
    )
