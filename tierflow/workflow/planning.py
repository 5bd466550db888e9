"""
Planning helpers shared by every level: the plan-mode preview, the
context-gathering planning document, the same-level plan summary and the
pre-fill of placeholder fields in the next level's sections.
"""

from __future__ import annotations

import re

from tierflow.descriptors import DESCRIPTORS
from tierflow.documents import (
    Project,
    Status,
    find_section,
    is_placeholder,
    read_field,
    replace_section,
)
from tierflow.identifiers import SECTION_LABELS, child_ids_in
from tierflow.levels import Level, tier_down
from tierflow.workflow.context import StartContext

FILL_FIELDS = ("Goal", "Description", "Files", "Approach", "Checkpoint")


def format_plan_mode_preview(title: str, steps: list[str], notes: list[str] | None = None) -> str:
    lines = [f"## Plan: {title}", "", "Nothing has been changed. Running in execute mode would:"]
    lines.extend(f"{i}. {step}" for i, step in enumerate(steps, 1))
    if notes:
        lines.extend(["", "**Would block execution:**"])
        lines.extend(f"- {note}" for note in notes)
    return "\n".join(lines)


def unit_guide_text(project: Project, level: Level, identifier: str) -> str | None:
    """The guide text describing a unit (its own section, for tasks)."""
    guide = project.read_optional(DESCRIPTORS[level].document_paths(project, identifier).guide)
    if guide is None or level != Level.TASK:
        return guide
    section = find_section(guide, Level.TASK, identifier)
    return "\n".join(section.lines) if section else None


def child_status(project: Project, level: Level, identifier: str) -> Status | None:
    return DESCRIPTORS[level].control_document.read_status(project, identifier)


def list_children(project: Project, level: Level, identifier: str) -> list[tuple[str, str, Status | None]]:
    """(id, title, status) for every direct child declared in the unit's guide."""
    child = tier_down(level)
    if child is None:
        return []
    guide = project.read_optional(DESCRIPTORS[level].document_paths(project, identifier).guide)
    if not guide:
        return []
    parent = identifier if level != Level.FEATURE else None
    children = []
    for cid in child_ids_in(guide, child, parent):
        section = find_section(guide, child, cid)
        title = section.title if section else ""
        children.append((cid, title, child_status(project, child, cid)))
    return children


# ---------------------------------------------------------------------------
# Context gathering
# ---------------------------------------------------------------------------

def write_planning_document(ctx: StartContext, questions: list[str]) -> str:
    rel = ctx.project.planning_doc(ctx.level, ctx.identifier)
    lines = [
        f"# {ctx.level.title} {ctx.resolved_display_id} Planning",
        "",
        "## Questions",
        "",
        *[f"- [ ] {q}" for q in questions],
        "",
        "## Answers",
        "",
    ]
    ctx.project.write(rel, "\n".join(lines) + "\n")
    return rel


def format_questions(questions: list[str], path: str) -> str:
    lines = ["## Context Gathering", "Answer these before planning continues:"]
    lines.extend(f"{i}. {q}" for i, q in enumerate(questions, 1))
    lines.append(f"\n**Planning document:** `{path}`")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Same-level plan
# ---------------------------------------------------------------------------

def run_level_plan(ctx: StartContext) -> str:
    text = unit_guide_text(ctx.project, ctx.level, ctx.identifier) or ""
    lines = [f"## {ctx.level.title} Plan: {ctx.resolved_display_id}"]
    description = ctx.resolved_description or read_field(text, "Description") or read_field(text, "Goal")
    if description and not is_placeholder(description):
        lines.append(f"**Goal:** {description}")

    if ctx.level == Level.TASK:
        for name in ("Files", "Approach", "Checkpoint"):
            value = read_field(text, name)
            if value and not is_placeholder(value):
                lines.append(f"**{name}:** {value}")
    else:
        children = list_children(ctx.project, ctx.level, ctx.identifier)
        label = SECTION_LABELS[tier_down(ctx.level)]
        if children:
            lines.append(f"**{label}s:**")
            for cid, title, status in children:
                state = status.value if status else Status.NOT_STARTED.value
                lines.append(f"- {label} {cid}: {title} ({state})")
        else:
            lines.append(f"No {label.lower()}s declared yet.")

    if ctx.planning_document_path:
        lines.append(f"**Planning document:** `{ctx.planning_document_path}`")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Child pre-fill
# ---------------------------------------------------------------------------

def _default_value(field: str, label: str, cid: str, title: str, parent: str) -> str:
    title = title or f"{label} {cid}"
    return {
        "Goal": title,
        "Description": title,
        "Files": f"To be identified when {label.lower()} {cid} starts",
        "Approach": f"Follow the {parent} plan for {title}",
        "Checkpoint": f"{title} works and is covered by tests",
    }[field]


def fill_direct_children(ctx: StartContext) -> str | None:
    """Replace placeholder field values in the direct children's sections."""
    child = tier_down(ctx.level)
    if child is None:
        return None
    rel = ctx.descriptor.document_paths(ctx.project, ctx.identifier).guide
    content = ctx.project.read_optional(rel)
    if not content:
        return None

    label = SECTION_LABELS[child]
    parent = f"{ctx.level.value} {ctx.resolved_display_id}"
    parent_filter = ctx.identifier if ctx.level != Level.FEATURE else None
    filled = 0
    sections = 0
    for cid in child_ids_in(content, child, parent_filter):
        section = find_section(content, child, cid)
        if section is None:
            continue
        new_lines = list(section.lines)
        changed = False
        for i, line in enumerate(new_lines):
            match = re.match(r"^(\s*(?:[-*]\s*)?\*\*(\w+):\*\*)\s*(.*)$", line)
            if not match or match.group(2) not in FILL_FIELDS or not is_placeholder(match.group(3)):
                continue
            value = _default_value(match.group(2), label, cid, section.title, parent)
            new_lines[i] = f"{match.group(1)} {value}"
            filled += 1
            changed = True
        if changed:
            content = replace_section(content, section, new_lines)
            sections += 1

    if not filled:
        return None
    ctx.project.write(rel, content)
    return f"Pre-filled {filled} placeholder field(s) in {sections} {label.lower()} section(s)."
