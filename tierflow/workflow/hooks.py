"""
Per-level hook sets consumed by the start and end pipelines.

A few hooks are required (the pipelines cannot run without them); the rest
are optional callables and a step whose hook is ``None`` is skipped. Steps
check presence explicitly; nothing is probed dynamically.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.workflow.context import EndContext, ReadResult, StartContext
from tierflow.workspace.branches import BranchOutcome


@dataclass
class ValidationResult:
    can_start: bool
    message: str = ""


@dataclass
class HookResult:
    """What an exiting end hook reports. ``reason_code``/``status`` refine the step's defaults."""
    success: bool
    output: str = ""
    reason_code: ReasonCode | None = None
    status: OutcomeStatus | None = None
    next_action: str = ""
    deliverables: str | None = None


@dataclass
class ChildRef:
    identifier: str
    started: bool


@dataclass
class SiblingState:
    next_sibling_id: str | None
    next_sibling_complete: bool
    parent_id: str | None
    all_siblings_complete: bool


@dataclass
class SuccessOutcome:
    status: OutcomeStatus
    reason_code: ReasonCode
    next_action: str


@dataclass
class StartHooks:
    # required
    build_header: Callable[[StartContext], list[str]]
    validate: Callable[[StartContext], ValidationResult]
    plan_mode_steps: Callable[[StartContext], list[str]]
    # optional
    plan_deliverables: Optional[Callable[[StartContext], str]] = None
    branch_hierarchy: Optional[Callable[[StartContext], Optional[str]]] = None
    ensure_branch: Optional[Callable[[StartContext], BranchOutcome]] = None
    after_branch: Optional[Callable[[StartContext], Optional[str]]] = None
    ensure_child_docs: Optional[Callable[[StartContext], list[str]]] = None
    read_context: Optional[Callable[[StartContext], Optional[ReadResult]]] = None
    gather_context: Optional[Callable[[StartContext], Optional[str]]] = None
    governance_context: Optional[Callable[[StartContext], Optional[str]]] = None
    context_questions: Optional[Callable[[StartContext], list[str]]] = None
    run_extras: Optional[Callable[[StartContext], Optional[str]]] = None
    run_start_audit: bool = False
    plan_level: Optional[Callable[[StartContext], Optional[str]]] = None
    fill_children: Optional[Callable[[StartContext], Optional[str]]] = None
    first_child: Optional[Callable[[StartContext], Optional[ChildRef]]] = None
    next_action: Optional[Callable[[StartContext], Optional[str]]] = None


@dataclass
class EndHooks:
    # required
    plan_mode_steps: Callable[[EndContext], list[str]]
    success_outcome: Callable[[EndContext], SuccessOutcome]
    # optional
    require_explicit_run_tests: bool = False
    pre_work: Optional[Callable[[EndContext], HookResult]] = None
    test_goal_validation: Optional[Callable[[EndContext], HookResult]] = None
    run_tests: Optional[Callable[[EndContext], HookResult]] = None
    mid_work: Optional[Callable[[EndContext], Optional[str]]] = None
    comment_cleanup: Optional[Callable[[EndContext], HookResult]] = None
    doc_cleanup: Optional[Callable[[EndContext], Optional[str]]] = None
    git: Optional[Callable[[EndContext], HookResult]] = None
    verification_check: Optional[Callable[[EndContext], list[str]]] = None
    run_end_audit: bool = False
    before_audit: Optional[Callable[[EndContext], dict[str, Any]]] = None
    after_audit: Optional[Callable[[EndContext], HookResult]] = None
    clear_scope: bool = True
    cascade: Optional[Callable[[EndContext], Optional[SiblingState]]] = None


@dataclass
class ReopenHooks:
    ensure_branch: Optional[Callable[[Any], BranchOutcome]] = None
