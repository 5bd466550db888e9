"""
Tier branch management: the chain of branches above a unit, making sure the
unit's branch exists and is checked out, and merging it back into its parent.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from tierflow.descriptors import DESCRIPTORS
from tierflow.documents import Project
from tierflow.levels import Level, ancestors
from tierflow.workspace import UncommittedChangesError, WorkspaceError


@dataclass(frozen=True)
class BranchLink:
    level: Level
    identifier: str
    branch: str
    parent_branch: str | None


@dataclass
class BranchOutcome:
    success: bool
    messages: list[str] = field(default_factory=list)
    final_branch: str | None = None
    blocked_by_uncommitted: bool = False
    dirty_files: list[str] = field(default_factory=list)


_ID_DEPTH = {Level.PHASE: 2, Level.SESSION: 3, Level.TASK: 4}


def _identifier_at(target: Level, identifier: str, feature: str | None) -> str | None:
    """Identifier of the ancestor at ``target`` (dotted ids extend their parent's)."""
    if target == Level.FEATURE:
        return feature
    return ".".join(identifier.split(".")[:_ID_DEPTH[target]])


def build_branch_chain(project: Project, level: Level, identifier: str) -> list[BranchLink]:
    """Branch-owning units from the feature down to ``level`` (tasks own no branch)."""
    chain: list[BranchLink] = []
    for lvl in (*ancestors(level), level):
        unit_id = identifier if lvl == level else _identifier_at(lvl, identifier, project.feature)
        if unit_id is None:
            continue
        descriptor = DESCRIPTORS[lvl]
        branch = descriptor.branch_name(project, unit_id)
        if branch is None:
            continue
        chain.append(BranchLink(lvl, unit_id, branch, descriptor.parent_branch_name(project, unit_id)))
    return chain


def format_branch_hierarchy(chain: list[BranchLink], current_branch: str | None) -> str:
    if not chain:
        return ""
    lines = ["**Branch hierarchy:**"]
    for depth, link in enumerate(chain):
        marker = " (current)" if link.branch == current_branch else ""
        lines.append(f"{'  ' * depth}- `{link.branch}` ({link.level.value} {link.identifier}){marker}")
    return "\n".join(lines)


def resolve_root_branch(git, candidates: list[str]) -> str | None:
    for name in candidates:
        if git.branch_exists(name):
            return name
    return None


def ensure_level_branch(git, chain: list[BranchLink], root_candidates: list[str]) -> BranchOutcome:
    """
    Make sure every branch in ``chain`` exists and the last one is checked out.

    Ancestors must already exist; only the target branch is created (off its
    parent). A dirty working tree blocks before anything is touched.
    """
    if not chain:
        return BranchOutcome(success=True, messages=["No branch required at this level."])

    dirty = git.dirty_files()
    if dirty:
        return BranchOutcome(
            success=False,
            blocked_by_uncommitted=True,
            dirty_files=dirty,
            messages=["Uncommitted changes block switching branches. Commit or stash them, then retry."],
        )

    messages: list[str] = []
    root = resolve_root_branch(git, root_candidates)
    target = chain[-1]
    try:
        for link in chain:
            parent = link.parent_branch or root
            if git.branch_exists(link.branch):
                if parent and git.branch_exists(parent) and not git.is_based_on(link.branch, parent):
                    return BranchOutcome(
                        success=False,
                        messages=messages + [f"Branch `{link.branch}` is not based on `{parent}`."],
                    )
                continue
            if link is not target:
                return BranchOutcome(
                    success=False,
                    messages=messages + [
                        f"Branch `{link.branch}` for {link.level.value} {link.identifier} does not exist. "
                        f"Run /{link.level.value}-start {link.identifier} first."
                    ],
                )
            if parent and not git.branch_exists(parent):
                return BranchOutcome(success=False, messages=messages + [f"Parent branch `{parent}` does not exist."])
            git.create_branch(link.branch, parent)
            messages.append(f"Created branch `{link.branch}` from `{parent or 'HEAD'}`.")

        if git.current_branch() != target.branch:
            git.checkout(target.branch)
            messages.append(f"Checked out `{target.branch}`.")
        else:
            messages.append(f"Already on `{target.branch}`.")
    except UncommittedChangesError as e:
        return BranchOutcome(
            success=False, blocked_by_uncommitted=True, dirty_files=e.files, messages=messages + [str(e)]
        )
    except WorkspaceError as e:
        logger.warning(f"[GIT] Branch setup failed: {e}")
        return BranchOutcome(success=False, messages=messages + [str(e)])

    return BranchOutcome(success=True, messages=messages, final_branch=target.branch)


@dataclass
class MergeOutcome:
    success: bool
    messages: list[str] = field(default_factory=list)


def merge_level_branch(git, branch: str, into: str, delete_source: bool) -> MergeOutcome:
    try:
        if not git.branch_exists(branch):
            return MergeOutcome(success=False, messages=[f"Branch `{branch}` does not exist."])
        if not git.branch_exists(into):
            return MergeOutcome(success=False, messages=[f"Target branch `{into}` does not exist."])
        git.merge(branch, into, delete_source=delete_source)
    except WorkspaceError as e:
        return MergeOutcome(success=False, messages=[str(e)])
    messages = [f"Merged `{branch}` into `{into}`."]
    if delete_source:
        messages.append(f"Deleted `{branch}`.")
    return MergeOutcome(success=True, messages=messages)
