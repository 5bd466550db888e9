import pytest

from tierflow.descriptors import DESCRIPTORS
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.workflow.context import ContextSlice, EndContext, EndParams, StartContext, StartOptions, writes
from tierflow.workflow.end import END_STEPS, run_end_workflow
from tierflow.workflow.hooks import EndHooks, HookResult, StartHooks, SuccessOutcome, ValidationResult
from tierflow.workflow.start import START_STEPS, run_start_workflow
from tierflow.workspace.branches import BranchOutcome


def _start_ctx(services, mode="execute", identifier="2.2.1"):
    return StartContext(
        descriptor=DESCRIPTORS[Level.SESSION],
        identifier=identifier,
        resolved_display_id=identifier,
        mode=mode,
        services=services.for_feature("booking"),
        options=StartOptions(),
    )


def _end_ctx(services, mode="execute", **params):
    return EndContext(
        descriptor=DESCRIPTORS[Level.TASK],
        identifier="2.2.1.3",
        params=EndParams(identifier="2.2.1.3", **params),
        mode=mode,
        services=services.for_feature("booking"),
    )


class Calls(list):
    def hook(self, name, value=None):
        def call(ctx):
            self.append(name)
            return value
        return call


def test_step_order_is_fixed():
    assert [s.__name__ for s in START_STEPS][:3] == ["step_append_header", "step_validate", "step_plan_mode_exit"]
    assert [s.__name__ for s in END_STEPS][0] == "step_end_plan_exit"
    assert END_STEPS[-1].__name__ == "step_clear_scope"
    end_names = [s.__name__ for s in END_STEPS]
    assert end_names.index("step_verification_check") < end_names.index("step_mid_work") < end_names.index("step_git")


def test_start_validation_failure_short_circuits(services):
    calls = Calls()
    hooks = StartHooks(
        build_header=calls.hook("header", ["# Header"]),
        validate=calls.hook("validate", ValidationResult(False, "nope")),
        plan_mode_steps=calls.hook("plan", []),
        ensure_branch=calls.hook("branch"),
        read_context=calls.hook("read"),
        next_action=calls.hook("next"),
    )

    result = run_start_workflow(_start_ctx(services), hooks)

    assert result.outcome.reason_code == ReasonCode.VALIDATION_FAILED.value
    assert calls == ["header", "validate"]
    assert "nope" in result.output


def test_start_plan_mode_runs_no_mutating_hooks(services):
    calls = Calls()
    hooks = StartHooks(
        build_header=calls.hook("header", []),
        validate=calls.hook("validate", ValidationResult(True)),
        plan_mode_steps=calls.hook("plan", ["step one"]),
        ensure_branch=calls.hook("branch"),
        ensure_child_docs=calls.hook("docs", []),
        fill_children=calls.hook("fill"),
    )

    result = run_start_workflow(_start_ctx(services, mode="plan"), hooks)

    assert result.success
    assert result.outcome.status == OutcomeStatus.PLAN
    assert calls == ["header", "validate", "plan"]
    assert "1. step one" in result.output


START_CALL_ORDER = [
    "header", "hierarchy", "validate", "branch", "after_branch", "docs", "read", "gather",
    "governance", "questions", "extras", "plan_level", "fill", "first_child", "next",
]


def _start_hooks(calls, **overrides):
    base = dict(
        build_header=calls.hook("header", []),
        branch_hierarchy=calls.hook("hierarchy"),
        validate=calls.hook("validate", ValidationResult(True)),
        plan_mode_steps=calls.hook("plan", []),
        ensure_branch=calls.hook("branch", BranchOutcome(True, ["On session branch."])),
        after_branch=calls.hook("after_branch"),
        ensure_child_docs=calls.hook("docs", []),
        read_context=calls.hook("read"),
        gather_context=calls.hook("gather"),
        governance_context=calls.hook("governance"),
        context_questions=calls.hook("questions", []),
        run_extras=calls.hook("extras"),
        plan_level=calls.hook("plan_level", "plan"),
        fill_children=calls.hook("fill"),
        first_child=calls.hook("first_child"),
        next_action=calls.hook("next"),
    )
    base.update(overrides)
    return StartHooks(**base)


def test_start_runs_every_hook_in_order(services):
    calls = Calls()

    result = run_start_workflow(_start_ctx(services), _start_hooks(calls))

    assert result.outcome.reason_code == ReasonCode.START_OK.value
    assert calls == START_CALL_ORDER


@pytest.mark.parametrize(
    "field, label, failing, code",
    [
        ("validate", "validate", ValidationResult(False, "nope"), ReasonCode.VALIDATION_FAILED),
        ("ensure_branch", "branch", BranchOutcome(False, ["Parent branch missing."]), ReasonCode.BRANCH_FAILED),
        (
            "ensure_branch",
            "branch",
            BranchOutcome(False, ["Tree is dirty."], blocked_by_uncommitted=True, dirty_files=["app/slots.py"]),
            ReasonCode.UNCOMMITTED_CHANGES_BLOCKING,
        ),
        ("context_questions", "questions", ["Which timezone do slots use?"], ReasonCode.CONTEXT_GATHERING),
    ],
)
def test_start_exiting_steps_short_circuit(services, field, label, failing, code):
    calls = Calls()
    hooks = _start_hooks(calls, **{field: calls.hook(label, failing)})

    result = run_start_workflow(_start_ctx(services), hooks)

    assert result.outcome.reason_code == code.value
    assert calls == START_CALL_ORDER[: START_CALL_ORDER.index(label) + 1]
    assert result.outcome.cascade is None


def test_start_skips_missing_optional_hooks(services):
    hooks = StartHooks(
        build_header=lambda ctx: ["# Header"],
        validate=lambda ctx: ValidationResult(True),
        plan_mode_steps=lambda ctx: [],
        next_action=lambda ctx: "Carry on.",
    )

    result = run_start_workflow(_start_ctx(services), hooks)

    assert result.outcome.reason_code == ReasonCode.START_OK.value
    assert result.outcome.next_action == "Carry on."
    assert result.outcome.cascade is None


def test_context_questions_write_planning_document(services, project_root):
    hooks = StartHooks(
        build_header=lambda ctx: [],
        validate=lambda ctx: ValidationResult(True),
        plan_mode_steps=lambda ctx: [],
        context_questions=lambda ctx: ["Which timezone do slots use?"],
    )

    result = run_start_workflow(_start_ctx(services), hooks)

    assert result.outcome.reason_code == ReasonCode.CONTEXT_GATHERING.value
    assert result.planning_document_path.endswith("planning/session-2-2-1-planning.md")
    assert "Which timezone" in (project_root / result.planning_document_path).read_text()


END_CALL_ORDER = [
    "pre_work", "goals", "tests", "verify", "mid_work", "comments",
    "docs", "git", "before_audit", "after_audit", "cascade", "success",
]


def _end_hooks(calls, **overrides):
    base = dict(
        plan_mode_steps=calls.hook("plan", ["step"]),
        success_outcome=calls.hook(
            "success", SuccessOutcome(OutcomeStatus.COMPLETED, ReasonCode.TASK_COMPLETE, "done")
        ),
        pre_work=calls.hook("pre_work", HookResult(True)),
        test_goal_validation=calls.hook("goals", HookResult(True)),
        run_tests=calls.hook("tests", HookResult(True)),
        verification_check=calls.hook("verify", []),
        mid_work=calls.hook("mid_work", "marked"),
        comment_cleanup=calls.hook("comments", HookResult(True)),
        doc_cleanup=calls.hook("docs"),
        git=calls.hook("git", HookResult(True)),
        run_end_audit=True,
        before_audit=calls.hook("before_audit", {"files": []}),
        after_audit=calls.hook("after_audit", HookResult(True)),
        clear_scope=False,
        cascade=calls.hook("cascade"),
    )
    base.update(overrides)
    return EndHooks(**base)


def test_end_runs_every_hook_in_order(services):
    calls = Calls()

    result = run_end_workflow(_end_ctx(services, run_tests=True), _end_hooks(calls))

    assert result.outcome.reason_code == ReasonCode.TASK_COMPLETE.value
    assert calls == END_CALL_ORDER


@pytest.mark.parametrize(
    "field, label, failing, code",
    [
        ("pre_work", "pre_work", HookResult(False, "broken"), ReasonCode.GOVERNANCE_GATE_FAILED),
        ("test_goal_validation", "goals", HookResult(False, "broken"), ReasonCode.TEST_GOAL_VALIDATION_FAILED),
        ("run_tests", "tests", HookResult(False, "broken"), ReasonCode.TESTS_FAILED),
        ("verification_check", "verify", ["Check slot edges"], ReasonCode.VERIFICATION_WORK_SUGGESTED),
        ("comment_cleanup", "comments", HookResult(False, "broken"), ReasonCode.COMMENT_CLEANUP_FAILED),
        ("git", "git", HookResult(False, "broken"), ReasonCode.GIT_FAILED),
        ("after_audit", "after_audit", HookResult(False, "broken"), ReasonCode.AUTOFIX_COMMIT_FAILED),
    ],
)
def test_end_exiting_steps_short_circuit(services, field, label, failing, code):
    calls = Calls()
    hooks = _end_hooks(calls, **{field: calls.hook(label, failing)})

    result = run_end_workflow(_end_ctx(services, run_tests=True), hooks)

    assert result.outcome.reason_code == code.value
    assert calls == END_CALL_ORDER[: END_CALL_ORDER.index(label) + 1]
    assert result.outcome.cascade is None


def test_missing_run_tests_stops_before_any_hook(services):
    calls = Calls()
    hooks = _end_hooks(calls, require_explicit_run_tests=True)

    result = run_end_workflow(_end_ctx(services), hooks)

    assert result.outcome.reason_code == ReasonCode.RUN_TESTS_REQUIRED.value
    assert result.outcome.status == OutcomeStatus.BLOCKED_NEEDS_INPUT
    assert calls == []


def test_verification_pause_comes_before_any_completion_work(services):
    calls = Calls()
    hooks = _end_hooks(calls, verification_check=calls.hook("verify", ["Check slot edges"]))

    paused = run_end_workflow(_end_ctx(services), hooks)

    assert paused.success
    assert "mid_work" not in calls and "git" not in calls


def test_end_hook_can_refine_reason_code(services):
    calls = Calls()
    refined = HookResult(
        False, "needs permission",
        reason_code=ReasonCode.TEST_FIX_PERMISSION_REQUIRED,
        status=OutcomeStatus.BLOCKED_NEEDS_INPUT,
    )
    hooks = _end_hooks(calls, run_tests=calls.hook("tests", refined))

    result = run_end_workflow(_end_ctx(services, run_tests=True), hooks)

    assert result.outcome.reason_code == ReasonCode.TEST_FIX_PERMISSION_REQUIRED.value
    assert result.outcome.status == OutcomeStatus.BLOCKED_NEEDS_INPUT


def test_end_skips_tests_unless_requested(services):
    calls = Calls()
    result = run_end_workflow(_end_ctx(services), _end_hooks(calls))

    assert result.success
    assert "tests" not in calls and "goals" not in calls
    assert result.steps["tests"].output == "skipped"


def test_skip_git_bypasses_git_hook(services):
    calls = Calls()
    result = run_end_workflow(_end_ctx(services, skip_git=True), _end_hooks(calls))

    assert result.success
    assert "git" not in calls


def test_end_plan_mode_is_read_only(services):
    calls = Calls()
    result = run_end_workflow(_end_ctx(services, mode="plan"), _end_hooks(calls))

    assert result.outcome.reason_code == ReasonCode.PLAN_MODE.value
    assert calls == ["plan"]


def test_verification_items_pause_the_end(services):
    calls = Calls()
    hooks = _end_hooks(calls, verification_check=lambda ctx: ["Check slot edges"])

    paused = run_end_workflow(_end_ctx(services), hooks)
    assert paused.success
    assert paused.outcome.reason_code == ReasonCode.VERIFICATION_WORK_SUGGESTED.value
    assert "- [ ] Check slot edges" in paused.outcome.deliverables

    resumed = run_end_workflow(_end_ctx(services, continue_past_verification=True), hooks)
    assert resumed.outcome.reason_code == ReasonCode.TASK_COMPLETE.value


def test_context_slice_limits_writes(services):
    ctx = _start_ctx(services)
    view = ContextSlice(ctx, frozenset({"read_result"}))

    view.read_result = None
    assert view.identifier == "2.2.1"
    with pytest.raises(AttributeError):
        view.identifier = "9.9.9"


def test_writes_decorator_records_fields():
    @writes("outcome", "audit_payload")
    def step(ctx, hooks):
        return None

    assert step.writes == frozenset({"outcome", "audit_payload"})
