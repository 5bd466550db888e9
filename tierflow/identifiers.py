"""
Identifier parsing for the four levels.

Feature identifiers are names (``booking-flow``). Everything below is dotted
numbering: phase ``X.Y``, session ``X.Y.Z``, task ``X.Y.Z.N``, where each
identifier extends its parent's.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from tierflow.levels import Level

FEATURE_NAME_RE = re.compile(r"^[A-Za-z0-9][\w.-]*$")
PHASE_ID_RE = re.compile(r"^\d+\.\d+$")
SESSION_ID_RE = re.compile(r"^\d+\.\d+\.\d+$")
TASK_ID_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")

ID_FORMATS: dict[Level, str] = {
    Level.FEATURE: "<name>",
    Level.PHASE: "X.Y",
    Level.SESSION: "X.Y.Z",
    Level.TASK: "X.Y.Z.N",
}

# Heading labels used for child sections inside a parent guide.
SECTION_LABELS: dict[Level, str] = {
    Level.PHASE: "Phase",
    Level.SESSION: "Session",
    Level.TASK: "Task",
}

_ID_PATTERNS: dict[Level, str] = {
    Level.PHASE: r"\d+\.\d+",
    Level.SESSION: r"\d+\.\d+\.\d+",
    Level.TASK: r"\d+\.\d+\.\d+\.\d+",
}


@dataclass(frozen=True)
class ParsedId:
    """A validated identifier split into its hierarchy parts."""
    level: Level
    raw: str
    parts: tuple[str, ...] = ()

    @property
    def phase_id(self) -> str | None:
        return ".".join(self.parts[:2]) if len(self.parts) >= 2 else None

    @property
    def session_id(self) -> str | None:
        return ".".join(self.parts[:3]) if len(self.parts) >= 3 else None

    @property
    def number(self) -> int | None:
        """Position among siblings (last dotted part)."""
        return int(self.parts[-1]) if self.parts else None


def parse_feature_id(value: str) -> ParsedId | None:
    value = (value or "").strip()
    if not FEATURE_NAME_RE.match(value):
        return None
    return ParsedId(Level.FEATURE, value)


def parse_phase_id(value: str) -> ParsedId | None:
    return _parse_dotted(Level.PHASE, PHASE_ID_RE, value)


def parse_session_id(value: str) -> ParsedId | None:
    return _parse_dotted(Level.SESSION, SESSION_ID_RE, value)


def parse_task_id(value: str) -> ParsedId | None:
    return _parse_dotted(Level.TASK, TASK_ID_RE, value)


def _parse_dotted(level: Level, pattern: re.Pattern, value: str) -> ParsedId | None:
    value = (value or "").strip()
    if not pattern.match(value):
        return None
    return ParsedId(level, value, tuple(value.split(".")))


def parent_id(level: Level, identifier: str, feature: str | None = None) -> str | None:
    """
    Identifier of the enclosing unit. A phase's parent is the feature, whose
    identifier is its name and cannot be derived from the number alone.
    """
    if level == Level.FEATURE:
        return None
    if level == Level.PHASE:
        return feature
    return identifier.rsplit(".", 1)[0]


def next_sibling_id(level: Level, identifier: str) -> str | None:
    """``2.2.1.3`` -> ``2.2.1.4``. Features are named and have no numbering."""
    if level == Level.FEATURE:
        return None
    head, _, last = identifier.rpartition(".")
    if not last.isdigit():
        return None
    return f"{head}.{int(last) + 1}" if head else str(int(last) + 1)


def sort_key(identifier: str) -> tuple[int, ...]:
    return tuple(int(p) for p in identifier.split(".") if p.isdigit())


def child_ids_in(content: str, child_level: Level, parent: str | None = None) -> list[str]:
    """
    Collect child identifiers declared as ``Phase X.Y:`` / ``Session X.Y.Z:`` /
    ``Task X.Y.Z.N:`` in a guide, sorted numerically and de-duplicated.
    ``parent`` restricts the result to children of that identifier.
    """
    label = SECTION_LABELS.get(child_level)
    if label is None or not content:
        return []
    pattern = re.compile(rf"\b{label}\s+({_ID_PATTERNS[child_level]}):", re.IGNORECASE)
    found = {m.group(1) for m in pattern.finditer(content)}
    if parent:
        found = {cid for cid in found if cid.startswith(parent + ".")}
    return sorted(found, key=sort_key)


def to_filename(identifier: str) -> str:
    """Dots are not used in document file names: ``2.2.1`` -> ``2-2-1``."""
    return identifier.replace(".", "-")
