"""
Unit descriptors: one static, immutable record per level describing how to
parse its identifiers, where its documents live, how its status is read and
written, how its branch is named and where its log entries go.

Descriptors never look each other up. Walking the hierarchy is the job of
``levels`` and ``cascade``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from tierflow.documents import (
    Project,
    Status,
    append_entry,
    log_entry,
    read_section_status,
    read_status,
    replace_status,
    write_section_status,
)
from tierflow.identifiers import (
    ID_FORMATS,
    ParsedId,
    parse_feature_id,
    parse_phase_id,
    parse_session_id,
    parse_task_id,
)
from tierflow.levels import Level
from tierflow.outcome import CommandDescriptor


@dataclass(frozen=True)
class DocumentPaths:
    guide: str
    log: str
    handoff: str


@dataclass(frozen=True)
class ControlDocument:
    """Where a unit's status lives and how to read/write it."""
    locate: Callable[[Project, str], str]
    read_status: Callable[[Project, str], Status | None]
    write_status: Callable[[Project, str, Status], None]


@dataclass(frozen=True)
class UnitDescriptor:
    level: Level
    id_format: str
    parse_identifier: Callable[[str], ParsedId | None]
    document_paths: Callable[[Project, str], DocumentPaths]
    control_document: ControlDocument
    append_log: Callable[[Project, str, str, str], None]
    branch_name: Callable[[Project, str], str | None]
    parent_branch_name: Callable[[Project, str], str | None]
    replan_handler: Callable[[str], CommandDescriptor] | None = None

    @property
    def name(self) -> str:
        return self.level.value

    def command_name(self, action: str) -> str:
        return f"{self.level.value}-{action}"


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _guide_status_reader(locate: Callable[[Project, str], str]) -> Callable[[Project, str], Status | None]:
    def read(project: Project, identifier: str) -> Status | None:
        return read_status(project.read_optional(locate(project, identifier)))
    return read


def _guide_status_writer(locate: Callable[[Project, str], str]) -> Callable[[Project, str, Status], None]:
    def write(project: Project, identifier: str, status: Status) -> None:
        rel = locate(project, identifier)
        project.write(rel, replace_status(project.read(rel), status))
    return write


def _log_appender(log_path: Callable[[Project, str], str], header: Callable[[str], str]):
    def append(project: Project, identifier: str, title: str, body: str) -> None:
        append_entry(project, log_path(project, identifier), log_entry(title, body), header(identifier))
    return append


def _phase_of(identifier: str) -> str:
    return ".".join(identifier.split(".")[:2])


def _session_of(identifier: str) -> str:
    return ".".join(identifier.split(".")[:3])


# ---------------------------------------------------------------------------
# Feature
# ---------------------------------------------------------------------------

def _feature_paths(project: Project, identifier: str) -> DocumentPaths:
    p = project.with_feature(identifier)
    return DocumentPaths(p.feature_doc("guide"), p.feature_doc("log"), p.feature_doc("handoff"))


def _feature_guide(project: Project, identifier: str) -> str:
    return _feature_paths(project, identifier).guide


FEATURE = UnitDescriptor(
    level=Level.FEATURE,
    id_format=ID_FORMATS[Level.FEATURE],
    parse_identifier=parse_feature_id,
    document_paths=_feature_paths,
    control_document=ControlDocument(
        locate=_feature_guide,
        read_status=_guide_status_reader(_feature_guide),
        write_status=_guide_status_writer(_feature_guide),
    ),
    append_log=_log_appender(lambda p, i: _feature_paths(p, i).log, lambda i: f"Feature {i} Log"),
    branch_name=lambda project, identifier: f"feature/{identifier}",
    parent_branch_name=lambda project, identifier: None,
)


# ---------------------------------------------------------------------------
# Phase
# ---------------------------------------------------------------------------

def _phase_paths(project: Project, identifier: str) -> DocumentPaths:
    return DocumentPaths(
        project.phase_doc(identifier, "guide"),
        project.phase_doc(identifier, "log"),
        project.phase_doc(identifier, "handoff"),
    )


def _phase_guide(project: Project, identifier: str) -> str:
    return _phase_paths(project, identifier).guide


PHASE = UnitDescriptor(
    level=Level.PHASE,
    id_format=ID_FORMATS[Level.PHASE],
    parse_identifier=parse_phase_id,
    document_paths=_phase_paths,
    control_document=ControlDocument(
        locate=_phase_guide,
        read_status=_guide_status_reader(_phase_guide),
        write_status=_guide_status_writer(_phase_guide),
    ),
    append_log=_log_appender(lambda p, i: _phase_paths(p, i).log, lambda i: f"Phase {i} Log"),
    branch_name=lambda project, identifier: f"{project.feature_name}-phase-{identifier}",
    parent_branch_name=lambda project, identifier: f"feature/{project.feature_name}",
    replan_handler=lambda identifier: CommandDescriptor(level=Level.PHASE, action="start", identifier=identifier),
)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def _session_paths(project: Project, identifier: str) -> DocumentPaths:
    return DocumentPaths(
        project.session_doc(identifier, "guide"),
        project.session_doc(identifier, "log"),
        project.session_doc(identifier, "handoff"),
    )


def _session_guide(project: Project, identifier: str) -> str:
    return _session_paths(project, identifier).guide


SESSION = UnitDescriptor(
    level=Level.SESSION,
    id_format=ID_FORMATS[Level.SESSION],
    parse_identifier=parse_session_id,
    document_paths=_session_paths,
    control_document=ControlDocument(
        locate=_session_guide,
        read_status=_guide_status_reader(_session_guide),
        write_status=_guide_status_writer(_session_guide),
    ),
    append_log=_log_appender(lambda p, i: _session_paths(p, i).log, lambda i: f"Session {i} Log"),
    branch_name=lambda project, identifier: (
        f"{project.feature_name}-phase-{_phase_of(identifier)}-session-{identifier}"
    ),
    parent_branch_name=lambda project, identifier: f"{project.feature_name}-phase-{_phase_of(identifier)}",
    replan_handler=lambda identifier: CommandDescriptor(level=Level.SESSION, action="start", identifier=identifier),
)


# ---------------------------------------------------------------------------
# Task (a section of its session guide; no documents or branch of its own)
# ---------------------------------------------------------------------------

def _task_paths(project: Project, identifier: str) -> DocumentPaths:
    return _session_paths(project, _session_of(identifier))


def _task_locate(project: Project, identifier: str) -> str:
    return _task_paths(project, identifier).guide


def _task_read_status(project: Project, identifier: str) -> Status | None:
    content = project.read_optional(_task_locate(project, identifier))
    return read_section_status(content, Level.TASK, identifier) if content else None


def _task_write_status(project: Project, identifier: str, status: Status) -> None:
    rel = _task_locate(project, identifier)
    project.write(rel, write_section_status(project.read(rel), Level.TASK, identifier, status))


def _task_append_log(project: Project, identifier: str, title: str, body: str) -> None:
    session_id = _session_of(identifier)
    append_entry(
        project,
        _task_paths(project, identifier).log,
        log_entry(f"Task {identifier}: {title}", body),
        f"Session {session_id} Log",
    )


TASK = UnitDescriptor(
    level=Level.TASK,
    id_format=ID_FORMATS[Level.TASK],
    parse_identifier=parse_task_id,
    document_paths=_task_paths,
    control_document=ControlDocument(
        locate=_task_locate,
        read_status=_task_read_status,
        write_status=_task_write_status,
    ),
    append_log=_task_append_log,
    branch_name=lambda project, identifier: None,
    parent_branch_name=lambda project, identifier: (
        f"{project.feature_name}-phase-{_phase_of(identifier)}-session-{_session_of(identifier)}"
    ),
)


DESCRIPTORS: dict[Level, UnitDescriptor] = {
    Level.FEATURE: FEATURE,
    Level.PHASE: PHASE,
    Level.SESSION: SESSION,
    Level.TASK: TASK,
}
