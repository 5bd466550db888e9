from pathlib import Path

import pytest

from tierflow.auditor.engine import AuditReport, AutofixResult
from tierflow.checks import TestRunResult
from tierflow.config_loader import TierflowConfig
from tierflow.documents import Project
from tierflow.event_bus import EventBus
from tierflow.scope import ScopeEntry, ScopeStore, TierScope
from tierflow.services import Services
from tierflow.workspace import UncommittedChangesError, WorkspaceError

DOCS = ".project-manager/features/booking"

FEATURE_GUIDE = """# Feature: booking

**Status:** In Progress

## Phases

### Phase 2.2: Slot engine
**Description:** Slot calculation
"""

PHASE_GUIDE = """# Phase 2.2: Slot engine

**Status:** In Progress

## Sessions

### Session 2.2.1: Availability
**Description:** Availability rules

### Session 2.2.2: Holds
**Description:** [Fill in]
"""

SESSION_GUIDE = """# Session 2.2.1: Availability

**Status:** In Progress

## Tasks

#### Task 2.2.1.1: Model
**Status:** Complete

#### Task 2.2.1.2: Rules
**Status:** Complete

#### Task 2.2.1.3: Slot calculation
**Status:** In Progress
**Goal:** compute open slots
"""


class FakeGit:
    def __init__(self):
        self.branches = {"main", "feature/booking", "booking-phase-2.2"}
        self.current = "booking-phase-2.2"
        self.dirty: list[str] = []
        self.changed = ["app/slots.py"]
        self.created: list[tuple[str, str | None]] = []
        self.checkouts: list[str] = []
        self.commits: list[str] = []
        self.merges: list[tuple[str, str]] = []
        self.pushes: list[str] = []
        self.fail_commit = False

    def current_branch(self):
        return self.current

    def branch_exists(self, name):
        return name in self.branches

    def dirty_files(self):
        return list(self.dirty)

    def has_uncommitted_changes(self):
        return bool(self.dirty)

    def create_branch(self, name, base=None):
        self.branches.add(name)
        self.created.append((name, base))

    def checkout(self, name):
        if self.dirty:
            raise UncommittedChangesError(self.dirty)
        self.current = name
        self.checkouts.append(name)

    def is_based_on(self, branch, base):
        return True

    def changed_files(self, base=None):
        return list(self.changed)

    def commit(self, message, add_all=True):
        if self.fail_commit:
            raise WorkspaceError("commit rejected")
        self.commits.append(message)
        return "abc123def4567890"

    def merge(self, source, into, delete_source=False):
        self.merges.append((source, into))
        self.current = into
        if delete_source:
            self.branches.discard(source)

    def push(self, branch):
        self.pushes.append(branch)


class FakeTestRunner:
    __test__ = False

    def __init__(self):
        self.success = True
        self.output = ""
        self.calls: list[tuple] = []

    def run(self, level, identifier, target=None):
        self.calls.append((level, identifier, target))
        return TestRunResult(
            success=self.success,
            message="Tests passed" if self.success else "Tests failed (exit 1)",
            results={"output": self.output},
        )


class FakeAuditor:
    def __init__(self):
        self.gate_status = "pass"
        self.gate_findings: list[dict] = []
        self.calls: list[str] = []

    def _report(self, level, identifier, kind, status="pass", findings=None):
        return AuditReport(
            level=level, identifier=identifier, kind=kind, status=status,
            findings=findings or [], summary="no findings" if not findings else "secret_detected: 1",
        )

    def run_start_audit(self, level, identifier, files):
        self.calls.append("start")
        return self._report(level, identifier, "start")

    def run_gate(self, level, identifier, files):
        self.calls.append("gate")
        return self._report(level, identifier, "gate", self.gate_status, self.gate_findings)

    def run_end_audit(self, level, identifier, payload):
        self.calls.append("end")
        report = self._report(level, identifier, "end")
        report.autofix_result = AutofixResult()
        return report

    def recent_reports(self, limit=5):
        return []


def write(root: Path, rel: str, content: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def snapshot(root: Path) -> dict[str, str]:
    return {
        str(p.relative_to(root)): p.read_text(encoding="utf-8")
        for p in sorted(root.rglob("*")) if p.is_file()
    }


@pytest.fixture
def project_root(tmp_path):
    write(tmp_path, f"{DOCS}/feature-booking-guide.md", FEATURE_GUIDE)
    write(tmp_path, f"{DOCS}/phases/phase-2-2-guide.md", PHASE_GUIDE)
    write(tmp_path, f"{DOCS}/sessions/session-2-2-1-guide.md", SESSION_GUIDE)
    write(tmp_path, "app/slots.py", "def slots():\n    return []\n")
    return tmp_path


@pytest.fixture
def services(project_root):
    config = TierflowConfig()
    scope = ScopeStore(project_root, config.docs.scope_file, config.docs.legacy_scope_file)
    scope.write(TierScope(feature=ScopeEntry(id="booking", name="booking")))
    return Services(
        project=Project(root=project_root, docs_root=config.docs.root),
        config=config,
        git=FakeGit(),
        tests=FakeTestRunner(),
        auditor=FakeAuditor(),
        scope=scope,
        bus=EventBus(),
    )


@pytest.fixture
def events(services):
    received = []
    services.bus.subscribe(received.append)
    return received
