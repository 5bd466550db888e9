"""
The collaborators a pipeline run talks to, bundled so tests can swap in
fakes: documents (``Project``), git, the test runner, the auditor, the
scope store and the event bus.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from tierflow.audit_logger import AuditLogger
from tierflow.auditor.engine import Auditor
from tierflow.checks import TestRunner
from tierflow.config_loader import TierflowConfig, load_config
from tierflow.documents import Project
from tierflow.event_bus import EventBus
from tierflow.levels import Level
from tierflow.scope import ScopeStore
from tierflow.workspace import GitRepo


@dataclass
class Services:
    project: Project
    config: TierflowConfig
    git: GitRepo
    tests: TestRunner
    auditor: Auditor
    scope: ScopeStore
    bus: EventBus

    @property
    def root(self) -> Path:
        return self.project.root

    def for_feature(self, feature: str | None) -> "Services":
        return replace(self, project=self.project.with_feature(feature))

    def resolve_feature(self, level: Level, identifier: str, override: str | None = None) -> str | None:
        """The feature a unit belongs to: explicit override, the unit itself, or the active scope."""
        if override:
            return override
        if level == Level.FEATURE:
            return identifier
        return self.scope.resolve_id(Level.FEATURE)


def build_services(
    repo_path: Path,
    config: TierflowConfig | None = None,
    record_events: bool = True,
) -> Services:
    repo_path = Path(repo_path).resolve()
    config = config or load_config(repo_path)
    bus = EventBus()
    if record_events and config.logging.events_file:
        AuditLogger(repo_path / config.logging.events_file, bus)
    return Services(
        project=Project(root=repo_path, docs_root=config.docs.root),
        config=config,
        git=GitRepo(repo_path, ignore_dirty_paths=config.git.ignore_dirty_paths, remote=config.git.remote),
        tests=TestRunner(repo_path, config.testing),
        auditor=Auditor(repo_path, config.audit),
        scope=ScopeStore(repo_path, config.docs.scope_file, config.docs.legacy_scope_file),
        bus=bus,
    )
