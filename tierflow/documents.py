"""
Project documents: guides, logs, handoffs and planning documents.

Everything lives under the docs root (``.project-manager`` by default):

    features/<feature>/feature-<feature>-guide.md
    features/<feature>/phases/phase-2-2-guide.md
    features/<feature>/sessions/session-2-2-1-guide.md
    features/<feature>/planning/session-2-2-1-planning.md

Child units are sections of their parent guide (``### Session 2.2.1: Title``,
``#### Task 2.2.1.3: Title``). Status is a ``**Status:** <value>`` line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from pathlib import Path

from tierflow.identifiers import SECTION_LABELS, to_filename
from tierflow.levels import Level

UNRESOLVED_FEATURE = "unresolved-feature"


class DocumentNotFoundError(FileNotFoundError):
    pass


class Status(str, Enum):
    NOT_STARTED = "Not Started"
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    PARTIAL = "Partial"
    BLOCKED = "Blocked"
    COMPLETE = "Complete"
    REOPENED = "Reopened"

    @classmethod
    def parse(cls, value: str) -> "Status | None":
        value = value.strip().lower()
        for status in cls:
            if status.value.lower() == value:
                return status
        return None


STATUS_LINE_RE = re.compile(
    r"\*\*Status:\*\*\s*(Not Started|Planning|In Progress|Partial|Blocked|Complete|Reopened)",
    re.IGNORECASE,
)
HEADING_RE = re.compile(r"^\s*(?:[-*]\s*)?(?:\[[ xX]\]\s*)?(#{1,6})\s")
PLACEHOLDER_RE = re.compile(r"^\s*(\[(?:Fill in|To be planned|TBD)[^\]]*\]|TBD|TODO)\s*$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Project:
    """A repository plus the feature currently in play."""
    root: Path
    docs_root: str = ".project-manager"
    feature: str | None = None

    def with_feature(self, feature: str | None) -> "Project":
        return replace(self, feature=feature)

    @property
    def feature_name(self) -> str:
        return self.feature or UNRESOLVED_FEATURE

    @property
    def feature_dir(self) -> str:
        return f"{self.docs_root}/features/{self.feature_name}"

    def feature_doc(self, kind: str) -> str:
        return f"{self.feature_dir}/feature-{self.feature_name}-{kind}.md"

    def phase_doc(self, phase_id: str, kind: str) -> str:
        return f"{self.feature_dir}/phases/phase-{to_filename(phase_id)}-{kind}.md"

    def session_doc(self, session_id: str, kind: str) -> str:
        return f"{self.feature_dir}/sessions/session-{to_filename(session_id)}-{kind}.md"

    def planning_doc(self, level: Level, identifier: str) -> str:
        return f"{self.feature_dir}/planning/{level.value}-{to_filename(identifier)}-planning.md"

    # File access. Paths are relative to the repository root.

    def path(self, rel: str) -> Path:
        return self.root / rel

    def exists(self, rel: str) -> bool:
        return self.path(rel).is_file()

    def read(self, rel: str) -> str:
        target = self.path(rel)
        if not target.is_file():
            raise DocumentNotFoundError(rel)
        return target.read_text(encoding="utf-8")

    def read_optional(self, rel: str) -> str | None:
        target = self.path(rel)
        return target.read_text(encoding="utf-8") if target.is_file() else None

    def write(self, rel: str, content: str) -> None:
        target = self.path(rel)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def remove(self, rel: str) -> bool:
        target = self.path(rel)
        if target.is_file():
            target.unlink()
            return True
        return False


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Section:
    start: int          # line index of the heading
    end: int            # line index one past the last body line
    title: str
    lines: tuple[str, ...]

    @property
    def body(self) -> str:
        return "\n".join(self.lines[1:])


def find_section(content: str, level: Level, identifier: str) -> Section | None:
    """Locate the ``<Label> <id>: title`` heading for a child unit and its body."""
    label = SECTION_LABELS.get(level)
    if label is None:
        return None
    heading = re.compile(rf"^\s*(?:[-*]\s*)?(?:\[[ xX]\]\s*)?(#{{1,6}})\s+{label}\s+{re.escape(identifier)}:\s*(.*)$")
    lines = content.splitlines()
    for i, line in enumerate(lines):
        match = heading.match(line)
        if not match:
            continue
        depth = len(match.group(1))
        end = len(lines)
        for j in range(i + 1, len(lines)):
            other = HEADING_RE.match(lines[j])
            if other and len(other.group(1)) <= depth:
                end = j
                break
        return Section(i, end, match.group(2).strip(), tuple(lines[i:end]))
    return None


def replace_section(content: str, section: Section, new_lines: list[str]) -> str:
    lines = content.splitlines()
    lines[section.start:section.end] = new_lines
    return "\n".join(lines) + ("\n" if content.endswith("\n") else "")


def read_field(text: str, name: str) -> str | None:
    match = re.search(rf"^\s*(?:[-*]\s*)?\*\*{re.escape(name)}:\*\*\s*(.*)$", text, re.MULTILINE)
    return match.group(1).strip() if match else None


def is_placeholder(value: str | None) -> bool:
    return value is None or not value.strip() or bool(PLACEHOLDER_RE.match(value))


def bullet_items(content: str, heading: str) -> list[str]:
    """Bullet lines under ``## <heading>`` up to the next heading."""
    items: list[str] = []
    inside = False
    for line in content.splitlines():
        if HEADING_RE.match(line):
            inside = line.strip().lstrip("#").strip().lower() == heading.lower()
            continue
        stripped = line.strip()
        if inside and stripped.startswith(("- ", "* ")):
            items.append(stripped[2:].strip())
    return items


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def read_status(text: str | None) -> Status | None:
    if not text:
        return None
    match = STATUS_LINE_RE.search(text)
    return Status.parse(match.group(1)) if match else None


def replace_status(text: str, status: Status) -> str:
    """Rewrite the first status line; insert one after the first heading if absent."""
    new_line = f"**Status:** {status.value}"
    if STATUS_LINE_RE.search(text):
        return STATUS_LINE_RE.sub(new_line, text, count=1)
    lines = text.splitlines()
    insert_at = 1 if lines and HEADING_RE.match(lines[0]) else 0
    lines[insert_at:insert_at] = ["", new_line] if insert_at else [new_line, ""]
    return "\n".join(lines) + ("\n" if text.endswith("\n") else "")


def read_section_status(content: str, level: Level, identifier: str) -> Status | None:
    section = find_section(content, level, identifier)
    if section is None:
        return None
    # A checked heading checkbox counts as complete even without a status line.
    status = read_status(section.body)
    if status is None and re.match(r"^\s*[-*]\s*\[[xX]\]", section.lines[0]):
        return Status.COMPLETE
    return status


def write_section_status(content: str, level: Level, identifier: str, status: Status) -> str:
    section = find_section(content, level, identifier)
    if section is None:
        raise DocumentNotFoundError(f"{level.title} {identifier} section")
    lines = list(section.lines)
    body = "\n".join(lines[1:])
    if STATUS_LINE_RE.search(body):
        lines[1:] = STATUS_LINE_RE.sub(f"**Status:** {status.value}", body, count=1).split("\n")
    else:
        lines[1:1] = [f"**Status:** {status.value}"]
    return replace_section(content, section, lines)


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

def log_entry(title: str, body: str, when: date | None = None) -> str:
    stamp = (when or date.today()).isoformat()
    return f"## {title} - {stamp}\n\n{body.strip()}\n"


def append_entry(project: Project, rel: str, entry: str, header: str) -> None:
    existing = project.read_optional(rel)
    if existing is None:
        existing = f"# {header}\n"
    if not existing.endswith("\n"):
        existing += "\n"
    project.write(rel, existing + "\n" + entry)
