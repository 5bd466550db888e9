"""
Cascade builder: which unit to act on after a pipeline finishes.

Pure functions over the level hierarchy plus existence flags supplied by
the caller. Each resolver returns at most one CascadeInfo.
"""

from __future__ import annotations

from tierflow.levels import Level, tier_down, tier_up
from tierflow.outcome import CascadeDirection, CascadeInfo, CommandDescriptor, CommandAction, render_command


def _cascade(direction: CascadeDirection, level: Level, identifier: str, action: CommandAction) -> CascadeInfo:
    invoke = CommandDescriptor(level=level, action=action, identifier=identifier)
    return CascadeInfo(
        direction=direction,
        level=level,
        identifier=identifier,
        command=render_command(invoke),
        invoke=invoke,
    )


def build_cascade_down(from_level: Level, child_id: str) -> CascadeInfo | None:
    child = tier_down(from_level)
    if child is None or not child_id:
        return None
    return _cascade("down", child, child_id, "start")


def build_cascade_up(from_level: Level, parent_id: str) -> CascadeInfo | None:
    parent = tier_up(from_level)
    if parent is None or not parent_id:
        return None
    return _cascade("up", parent, parent_id, "end")


def build_cascade_across(level: Level, next_id: str) -> CascadeInfo | None:
    if not next_id:
        return None
    return _cascade("across", level, next_id, "start")


def resolve_start_cascade(
    level: Level,
    first_child_id: str | None,
    first_child_started: bool,
) -> CascadeInfo | None:
    """After a start: go down to the first child if it has not been started."""
    if first_child_id and not first_child_started:
        return build_cascade_down(level, first_child_id)
    return None


def resolve_end_cascade(
    level: Level,
    *,
    next_sibling_id: str | None,
    next_sibling_complete: bool,
    parent_id: str | None,
    all_siblings_complete: bool,
) -> CascadeInfo | None:
    """
    After an end: across to an incomplete next sibling, otherwise up to the
    parent's end once every sibling is complete, otherwise nothing.
    """
    if next_sibling_id and not next_sibling_complete:
        return build_cascade_across(level, next_sibling_id)
    if parent_id and all_siblings_complete:
        return build_cascade_up(level, parent_id)
    return None
