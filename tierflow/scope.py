"""
Persisted scope: the active unit at each level.

Stored as plain text in ``.project-manager/.tier-scope``:

    feature.id=booking
    feature.name=Booking Flow
    phase.id=2.2
    phase.name=
    ...

An empty id means no active unit at that level. Setting a level clears every
level below it. The file is re-read on every access; nothing is cached.
A legacy ``.current-feature`` file (a bare feature name) is migrated on first
read and then removed.
"""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, Field

from tierflow.levels import LEVEL_ORDER, Level, descendants

_LINE_RE = re.compile(r"^(feature|phase|session|task)\.(id|name)$")


class ScopeEntry(BaseModel):
    id: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or self.id


class TierScope(BaseModel):
    feature: ScopeEntry | None = None
    phase: ScopeEntry | None = None
    session: ScopeEntry | None = None
    task: ScopeEntry | None = None

    def get(self, level: Level) -> ScopeEntry | None:
        return getattr(self, level.value)

    def with_entry(self, level: Level, entry: ScopeEntry | None) -> "TierScope":
        return self.model_copy(update={level.value: entry})

    def is_empty(self) -> bool:
        return all(self.get(level) is None for level in LEVEL_ORDER)


class ScopeUpdate(BaseModel):
    previous: TierScope
    current: TierScope
    messages: list[str] = Field(default_factory=list)


def parse_scope(content: str) -> TierScope:
    ids: dict[str, str] = {}
    names: dict[str, str | None] = {}
    for line in content.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        match = _LINE_RE.match(key.strip())
        if not match:
            continue
        tier, field = match.groups()
        value = value.strip()
        if field == "id" and value:
            ids[tier] = value
        elif field == "name":
            names[tier] = value or None

    scope = TierScope()
    for level in LEVEL_ORDER:
        if level.value in ids:
            scope = scope.with_entry(level, ScopeEntry(id=ids[level.value], name=names.get(level.value)))
    return scope


def serialize_scope(scope: TierScope) -> str:
    lines = []
    for level in LEVEL_ORDER:
        entry = scope.get(level)
        lines.append(f"{level.value}.id={entry.id if entry else ''}")
        lines.append(f"{level.value}.name={(entry.name or '') if entry else ''}")
    return "\n".join(lines) + "\n"


class ScopeStore:
    """Read/write access to the scope file. Every call hits the disk."""

    def __init__(self, root: Path, scope_file: str, legacy_file: str | None = None):
        self.root = Path(root)
        self.path = self.root / scope_file
        self.legacy_path = self.root / legacy_file if legacy_file else None

    def read(self) -> TierScope:
        if self.path.exists():
            return parse_scope(self.path.read_text(encoding="utf-8"))
        return self._migrate_legacy()

    def write(self, scope: TierScope) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(serialize_scope(scope), encoding="utf-8")

    def update(self, level: Level, entry: ScopeEntry | None) -> ScopeUpdate:
        """
        Set (or clear, when ``entry`` is None) one level. Every descendant
        level is cleared either way.
        """
        previous = self.read()
        current = previous
        messages = []
        if entry is not None:
            current = current.with_entry(level, entry)
        else:
            current = current.with_entry(level, None)
            messages.append(f"Cleared {level.value} from scope.")
        for child in descendants(level):
            if current.get(child) is not None:
                messages.append(f"Cleared {child.value} from scope.")
            current = current.with_entry(child, None)
        self.write(current)
        logger.debug(f"[SCOPE] {level.value} -> {entry.id if entry else '(cleared)'}")
        return ScopeUpdate(previous=previous, current=current, messages=messages)

    def clear(self) -> None:
        """Remove the scope file entirely."""
        if self.path.exists():
            self.path.unlink()
            logger.debug("[SCOPE] Scope file removed")

    def resolve_id(self, level: Level, override: str | None = None) -> str | None:
        if override and override.strip():
            return override.strip()
        entry = self.read().get(level)
        return entry.id if entry else None

    def resolve_name(self, level: Level) -> str | None:
        entry = self.read().get(level)
        return entry.display_name if entry else None

    def _migrate_legacy(self) -> TierScope:
        if self.legacy_path is None or not self.legacy_path.exists():
            return TierScope()
        feature = self.legacy_path.read_text(encoding="utf-8").strip()
        if not feature:
            return TierScope()
        scope = TierScope(feature=ScopeEntry(id=feature, name=feature))
        self.write(scope)
        self.legacy_path.unlink()
        logger.info(f"[SCOPE] Migrated legacy scope file (feature={feature})")
        return scope


def format_scope_display(scope: TierScope) -> str:
    lines = ["## Current Scope"]
    for level in LEVEL_ORDER:
        entry = scope.get(level)
        if entry:
            suffix = f" ({entry.name})" if entry.name else ""
            lines.append(f"- **{level.title}:** {entry.id}{suffix}")
    if len(lines) == 1:
        lines.append("- (no active scope)")
    return "\n".join(lines)


def format_commit_prefix(scope: TierScope, level: Level) -> str:
    """``[2.2.1.3: Slot calculation]``; ``[task]`` when the level is not in scope."""
    entry = scope.get(level)
    if entry is None:
        return f"[{level.value}]"
    return f"[{entry.id}: {entry.display_name}]"
