from tierflow.control_plane import QuestionKey
from tierflow.dispatcher import run_reopen
from tierflow.documents import Status
from tierflow.outcome import ReasonCode

from conftest import DOCS, snapshot

SESSION_GUIDE_PATH = f"{DOCS}/sessions/session-2-2-1-guide.md"


def test_reopen_completed_task(services, project_root):
    dispatched = run_reopen("task", "2.2.1.1", "edge case in slot rounding", services=services)

    assert dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.REOPEN_OK.value
    assert dispatched.decision.question_key == QuestionKey.REOPEN_OPTIONS
    guide = (project_root / SESSION_GUIDE_PATH).read_text()
    assert f"#### Task 2.2.1.1: Model\n**Status:** {Status.REOPENED.value}" in guide
    log = (project_root / DOCS / "sessions" / "session-2-2-1-log.md").read_text()
    assert "edge case in slot rounding" in log
    assert services.scope.read().task.id == "2.2.1.1"
    assert services.git.current == "booking-phase-2.2-session-2.2.1"


def test_reopen_refuses_unfinished_unit(services, project_root):
    before = snapshot(project_root)

    dispatched = run_reopen("task", "2.2.1.3", "oops", services=services)

    assert not dispatched.success
    assert dispatched.result.outcome.reason_code == ReasonCode.VALIDATION_FAILED.value
    assert snapshot(project_root) == before


def test_reopen_plan_mode_previews(services, project_root):
    before = snapshot(project_root)

    dispatched = run_reopen("task", "2.2.1.1", "preview", {"mode": "plan"}, services=services)

    assert dispatched.result.outcome.reason_code == ReasonCode.PLAN_MODE.value
    assert snapshot(project_root) == before


def test_reopen_session_suggests_replanning(services, project_root):
    guide = project_root / SESSION_GUIDE_PATH
    guide.write_text(guide.read_text().replace("**Status:** In Progress", "**Status:** Complete", 1))

    dispatched = run_reopen("session", "2.2.1", "missed a requirement", services=services)

    assert dispatched.success
    assert "/session-start 2.2.1" in dispatched.result.outcome.next_action
