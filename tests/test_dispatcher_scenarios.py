import pytest

from tierflow.control_plane import QuestionKey
from tierflow.control_plane.reinvoke import reinvoke
from tierflow.dispatcher import dispatch, run_end, run_start
from tierflow.documents import Status
from tierflow.levels import Level
from tierflow.outcome import OutcomeStatus, ReasonCode

from conftest import DOCS, SESSION_GUIDE, snapshot, write

SESSION_BRANCH = "booking-phase-2.2-session-2.2.1"


def test_plan_start_changes_nothing(services, project_root):
    before = snapshot(project_root)

    dispatched = run_start("session", "2.2.1", {"mode": "plan"}, services=services)

    assert dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.PLAN_MODE.value
    assert dispatched.result.outcome.status == OutcomeStatus.PLAN
    assert dispatched.decision.question_key == QuestionKey.APPROVE_EXECUTE
    assert dispatched.decision.next_invoke.params["mode"] == "execute"
    assert dispatched.output.startswith("## Mode: Plan (Ask)")
    assert snapshot(project_root) == before
    assert services.git.created == [] and services.git.checkouts == [] and services.git.commits == []


def test_start_defaults_to_plan(services):
    dispatched = run_start("session", "2.2.1", services=services)
    assert dispatched.mode == "plan"
    assert dispatched.result.outcome.reason_code == ReasonCode.PLAN_MODE.value


def test_plan_mode_reports_validation_problems_without_blocking(services, project_root):
    (project_root / DOCS / "phases" / "phase-2-2-guide.md").unlink()

    dispatched = run_start("session", "2.2.1", {"mode": "plan"}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.PLAN_MODE.value
    assert "Would block execution" in dispatched.result.output


def test_missing_parent_guide_blocks_execute(services, project_root):
    (project_root / DOCS / "phases" / "phase-2-2-guide.md").unlink()

    dispatched = run_start("session", "2.2.1", {"mode": "execute"}, services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.status == OutcomeStatus.BLOCKED
    assert dispatched.result.outcome.reason_code == ReasonCode.VALIDATION_FAILED.value
    assert dispatched.decision.stop
    assert dispatched.output.startswith("## STOP: `/session-start` Failed")
    assert services.git.created == []


def test_session_start_execute(services, project_root, events):
    dispatched = run_start("session", "2.2.1", {"mode": "execute"}, services=services)

    assert dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.START_OK.value
    assert (SESSION_BRANCH, "booking-phase-2.2") in services.git.created
    assert services.git.current == SESSION_BRANCH
    assert services.scope.read().session.id == "2.2.1"
    assert (project_root / DOCS / "sessions" / "session-2-2-1-log.md").exists()
    assert (project_root / DOCS / "sessions" / "session-2-2-1-handoff.md").exists()
    # The first task is already complete, so there is nothing to cascade into.
    assert dispatched.result.outcome.cascade is None
    assert not dispatched.decision.stop
    assert services.auditor.calls == ["start"]

    types = [e.event_type for e in events]
    assert types[0] == "pipeline_started"
    assert types[-2:] == ["pipeline_finished", "dispatch_decision"]


def test_phase_start_cascades_into_unstarted_session(services, project_root):
    write(project_root, f"{DOCS}/sessions/session-2-2-1-guide.md",
          SESSION_GUIDE.replace("**Status:** In Progress", "**Status:** Not Started", 1))

    dispatched = run_start("phase", "2.2", {"mode": "execute"}, services=services)

    assert dispatched.success
    cascade = dispatched.result.outcome.cascade
    assert cascade.direction == "down"
    assert cascade.command == "/session-start 2.2.1"
    assert dispatched.decision.question_key == QuestionKey.CASCADE
    assert (project_root / DOCS / "sessions" / "session-2-2-2-guide.md").exists()
    phase_guide = (project_root / DOCS / "phases" / "phase-2-2-guide.md").read_text()
    assert "**Description:** Holds" in phase_guide


def test_uncommitted_changes_block_branch_switch(services):
    services.git.dirty = ["app/slots.py"]

    dispatched = run_start("session", "2.2.1", {"mode": "execute"}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.UNCOMMITTED_CHANGES_BLOCKING.value
    assert dispatched.decision.question_key == QuestionKey.UNCOMMITTED_CHANGES
    assert dispatched.decision.next_invoke.params["mode"] == "execute"


def test_governance_gate_failure_blocks_task_end(services, project_root):
    services.auditor.gate_status = "fail"
    services.auditor.gate_findings = [
        {"file": "app/slots.py", "line": 3, "description": "Potential hardcoded secret", "severity": "high"}
    ]

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": False}, services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.status == OutcomeStatus.BLOCKED_FIX_REQUIRED
    assert dispatched.result.outcome.reason_code == ReasonCode.GOVERNANCE_GATE_FAILED.value
    assert dispatched.decision.question_key == QuestionKey.FAILURE_OPTIONS
    assert services.git.commits == []
    guide = (project_root / DOCS / "sessions" / "session-2-2-1-guide.md").read_text()
    assert guide == SESSION_GUIDE


def test_governance_override_lets_task_end_through(services):
    services.auditor.gate_status = "fail"

    dispatched = run_end(
        "task",
        {"taskId": "2.2.1.3", "runTests": False, "overrideReason": "false positive", "followUp": "rotate key"},
        services=services,
    )

    assert dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.TASK_COMPLETE.value


def test_last_task_end_cascades_up_to_session(services, project_root):
    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": True}, services=services)

    assert dispatched.success
    outcome = dispatched.result.outcome
    assert outcome.reason_code == ReasonCode.TASK_COMPLETE.value
    assert outcome.cascade.direction == "up"
    assert outcome.cascade.level == Level.SESSION
    assert outcome.cascade.identifier == "2.2.1"
    assert outcome.cascade.command == "/session-end 2.2.1"
    assert dispatched.decision.next_invoke.action == "end"
    assert services.tests.calls == [(Level.TASK, "2.2.1.3", None)]
    assert services.git.commits == ["[task] complete task 2.2.1.3"]
    assert services.auditor.calls == ["gate"]

    guide = (project_root / DOCS / "sessions" / "session-2-2-1-guide.md").read_text()
    assert guide.count(f"**Status:** {Status.COMPLETE.value}") == 3
    assert "Task 2.2.1.3: Completed" in (project_root / DOCS / "sessions" / "session-2-2-1-log.md").read_text()


def test_task_end_cascades_across_to_next_task(services, project_root):
    write(project_root, f"{DOCS}/sessions/session-2-2-1-guide.md",
          SESSION_GUIDE + "\n#### Task 2.2.1.4: Holds API\n**Status:** Not Started\n")

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": False}, services=services)

    assert dispatched.result.outcome.cascade.command == "/task-start 2.2.1.4"


def test_failing_tests_stop_before_marking_complete(services, project_root):
    services.tests.success = False
    services.tests.output = "E   AssertionError: expected 3 slots\napp/slots.py:2: AssertionError"

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": True}, services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.reason_code in {
        ReasonCode.APP_CODE_TEST_FAILED.value, ReasonCode.TESTS_FAILED.value,
    }
    assert dispatched.result.outcome.cascade is None
    assert services.git.commits == []


def test_session_end_requires_explicit_run_tests(services, project_root):
    before = snapshot(project_root)

    dispatched = run_end("session", {"sessionId": "2.2.1"}, services=services)

    assert dispatched.result.outcome.status == OutcomeStatus.BLOCKED_NEEDS_INPUT
    assert dispatched.result.outcome.reason_code == ReasonCode.RUN_TESTS_REQUIRED.value
    assert snapshot(project_root) == before


def test_session_end_merges_and_asks_to_push(services, project_root):
    services.git.branches.add(SESSION_BRANCH)
    services.git.current = SESSION_BRANCH

    dispatched = run_end("session", {"sessionId": "2.2.1", "runTests": True}, services=services)

    assert dispatched.success
    outcome = dispatched.result.outcome
    assert outcome.reason_code == ReasonCode.PENDING_PUSH_CONFIRMATION.value
    assert outcome.cascade.command == "/session-start 2.2.2"
    assert services.git.merges == [(SESSION_BRANCH, "booking-phase-2.2")]
    assert dispatched.decision.question_key == QuestionKey.PUSH_CONFIRMATION
    assert services.auditor.calls == ["end"]
    assert (project_root / DOCS / "sessions" / "session-2-2-1-handoff.md").exists()


def test_session_end_with_push_is_done(services):
    services.git.branches.add(SESSION_BRANCH)

    dispatched = run_end("session", {"sessionId": "2.2.1", "runTests": False, "push": True}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.END_OK.value
    assert services.git.pushes == ["booking-phase-2.2"]


def test_invalid_end_identifier(services):
    dispatched = run_end("task", {"taskId": "2.2.1"}, services=services)
    assert dispatched.result.outcome.reason_code == ReasonCode.VALIDATION_FAILED.value


def test_unhandled_error_is_caught_once(services):
    def explode(level, identifier, target=None):
        raise RuntimeError("runner exploded")

    services.tests.run = explode

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": True}, services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.status == OutcomeStatus.FAILED
    assert dispatched.result.outcome.reason_code == ReasonCode.UNHANDLED_ERROR.value
    assert "runner exploded" in dispatched.result.output
    assert dispatched.decision.stop


def test_reinvoke_follows_plan_approval(services):
    planned = run_start("session", "2.2.1", {"mode": "plan"}, services=services)

    executed = reinvoke(planned.decision.next_invoke, services=services)

    assert executed.mode == "execute"
    assert executed.result.outcome.reason_code == ReasonCode.START_OK.value


def test_dispatch_rejects_unknown_action(services):
    with pytest.raises(ValueError):
        dispatch("task", "pause", "2.2.1.3", services=services)


def test_debug_comments_are_stripped_on_end(services, project_root):
    services.config.comments.strip_markers = ["# DEBUG"]
    write(project_root, "app/slots.py", "def slots():\n    # DEBUG print(slots)\n    return []\n")

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": False}, services=services)

    assert dispatched.success
    assert (project_root / "app" / "slots.py").read_text() == "def slots():\n    return []\n"


def test_commit_failure_is_git_failed(services):
    services.git.fail_commit = True

    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": False}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.GIT_FAILED.value
    assert dispatched.result.outcome.status == OutcomeStatus.FAILED


def test_feature_end_commits_pushes_and_clears_scope(services, project_root):
    dispatched = run_end("feature", {"featureId": "booking", "push": True}, services=services)

    assert dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.END_OK.value
    assert dispatched.result.outcome.cascade is None
    assert not dispatched.decision.stop
    assert services.git.commits == ["[booking: booking] complete feature booking"]
    assert services.git.pushes == ["feature/booking"]
    assert not (project_root / ".project-manager" / ".tier-scope").exists()
    guide = (project_root / DOCS / "feature-booking-guide.md").read_text()
    assert f"**Status:** {Status.COMPLETE.value}" in guide


def test_feature_end_pauses_for_verification(services, project_root):
    guide = project_root / DOCS / "feature-booking-guide.md"
    guide.write_text(guide.read_text() + "\n## Verification\n\n- [ ] Book across a DST change\n- [x] Cancel a hold\n")

    dispatched = run_end("feature", {"featureId": "booking"}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.VERIFICATION_WORK_SUGGESTED.value
    assert dispatched.decision.question_key == QuestionKey.VERIFICATION_OPTIONS
    assert "Book across a DST change" in dispatched.result.outcome.deliverables
    assert "Cancel a hold" not in dispatched.result.outcome.deliverables
    assert dispatched.decision.next_invoke.params["continuePastVerification"] is True
    assert services.git.commits == []
    assert "**Status:** In Progress" in guide.read_text()


def test_session_end_resumes_after_verification_pause(services, project_root):
    services.git.branches.add(SESSION_BRANCH)
    services.git.current = SESSION_BRANCH
    guide = project_root / DOCS / "sessions" / "session-2-2-1-guide.md"
    guide.write_text(SESSION_GUIDE + "\n## Verification\n\n- [ ] Check DST edges\n")

    paused = run_end("session", {"sessionId": "2.2.1", "runTests": False}, services=services)

    assert paused.result.outcome.reason_code == ReasonCode.VERIFICATION_WORK_SUGGESTED.value
    assert services.git.merges == [] and services.git.commits == []
    assert guide.read_text().startswith("# Session 2.2.1: Availability\n\n**Status:** In Progress")

    resumed = reinvoke(paused.decision.next_invoke, services=services)

    assert resumed.success
    assert resumed.result.outcome.reason_code == ReasonCode.PENDING_PUSH_CONFIRMATION.value
    assert services.git.merges == [(SESSION_BRANCH, "booking-phase-2.2")]
    assert SESSION_BRANCH not in services.git.branches
    log = (project_root / DOCS / "sessions" / "session-2-2-1-log.md").read_text()
    assert log.count("## Completed") == 1


def test_malformed_mode_falls_back_to_default(services, project_root):
    before = snapshot(project_root)

    started = run_start("session", "2.2.1", {"mode": 1}, services=services)

    assert started.mode == "plan"
    assert started.result.outcome.reason_code == ReasonCode.PLAN_MODE.value
    assert snapshot(project_root) == before

    ended = run_end("task", {"taskId": "2.2.1.3", "runTests": False, "mode": ["plan"]}, services=services)

    assert ended.mode == "execute"
    assert ended.result.outcome.reason_code == ReasonCode.TASK_COMPLETE.value


def test_malformed_end_params_are_a_failed_result(services):
    dispatched = run_end("task", {"taskId": "2.2.1.3", "runTests": "maybe"}, services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.status == OutcomeStatus.FAILED
    assert dispatched.result.outcome.reason_code == ReasonCode.UNHANDLED_ERROR.value
    assert dispatched.result.output.startswith("**task-end failed with unhandled error:**")
    assert services.git.commits == []


def test_invalid_repo_config_is_a_failed_result(project_root):
    write(project_root, ".tierflow/config.yaml", "testing: [unclosed\n")

    dispatched = run_start("session", "2.2.1", {"mode": "plan"}, repo_path=project_root)

    assert not dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.UNHANDLED_ERROR.value
    assert "Invalid YAML" in dispatched.result.output
    assert dispatched.decision.stop
