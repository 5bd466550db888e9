"""
Hook building blocks shared by the four levels.

Each function takes the pipeline context and talks to the collaborators in
``ctx.services``. The per-level modules pick and combine these.
"""

from __future__ import annotations

import re
from datetime import date

from loguru import logger

from tierflow.auditor.engine import format_report
from tierflow.auditor.governance import build_governance_context
from tierflow.checks import analyze_test_error, run_verify, validate_test_goals
from tierflow.descriptors import DESCRIPTORS
from tierflow.documents import (
    DocumentNotFoundError,
    Status,
    bullet_items,
    find_section,
)
from tierflow.identifiers import SECTION_LABELS, child_ids_in, parent_id
from tierflow.levels import Level, tier_up
from tierflow.outcome import OutcomeStatus, ReasonCode
from tierflow.scope import ScopeEntry, format_commit_prefix, format_scope_display
from tierflow.workflow.context import EndContext, ReadResult, StartContext
from tierflow.workflow.hooks import ChildRef, HookResult, SiblingState, ValidationResult
from tierflow.workflow.planning import list_children, unit_guide_text
from tierflow.workspace import WorkspaceError
from tierflow.workspace.branches import (
    BranchOutcome,
    build_branch_chain,
    ensure_level_branch,
    format_branch_hierarchy,
    merge_level_branch,
)

STARTED = (Status.IN_PROGRESS, Status.PARTIAL, Status.BLOCKED, Status.COMPLETE, Status.REOPENED, Status.PLANNING)


# ---------------------------------------------------------------------------
# Identity / documents
# ---------------------------------------------------------------------------

def parent_guide(ctx) -> tuple[str, str | None]:
    """(path, content) of the guide that declares this unit."""
    parent = tier_up(ctx.level)
    if parent is None:
        rel = ctx.descriptor.document_paths(ctx.project, ctx.identifier).guide
    else:
        pid = parent_id(ctx.level, ctx.identifier, ctx.project.feature)
        rel = DESCRIPTORS[parent].document_paths(ctx.project, pid).guide
    return rel, ctx.project.read_optional(rel)


def unit_title(ctx) -> str | None:
    if ctx.level == Level.FEATURE:
        return ctx.identifier
    _, content = parent_guide(ctx)
    section = find_section(content or "", ctx.level, ctx.identifier)
    return section.title if section and section.title else None


def current_status(ctx) -> Status | None:
    return ctx.descriptor.control_document.read_status(ctx.project, ctx.identifier)


def modified_files(ctx: EndContext) -> list[str]:
    if ctx.params.modified_files:
        return list(ctx.params.modified_files)
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    try:
        return ctx.services.git.changed_files(parent)
    except WorkspaceError as e:
        logger.warning(f"[END] Could not list changed files: {e}")
        return []


# ---------------------------------------------------------------------------
# Start hooks
# ---------------------------------------------------------------------------

def build_header(ctx: StartContext) -> list[str]:
    title = unit_title(ctx)
    heading = f"# {ctx.level.title} {ctx.resolved_display_id} Start" + (f": {title}" if title and title != ctx.identifier else "")
    return [heading, f"**Date:** {date.today().isoformat()}  \n**Mode:** {ctx.mode}"]


def branch_hierarchy(ctx: StartContext) -> str | None:
    chain = build_branch_chain(ctx.project, ctx.level, ctx.identifier)
    try:
        current = ctx.services.git.current_branch()
    except WorkspaceError:
        current = None
    return format_branch_hierarchy(chain, current)


def validate_unit(ctx: StartContext) -> ValidationResult:
    """Shared eligibility rules: feature known, id well formed, declared by its parent, not complete."""
    level = ctx.level
    if level != Level.FEATURE and not ctx.project.feature:
        return ValidationResult(False, "No active feature. Start a feature first or pass the feature explicitly.")
    if ctx.descriptor.parse_identifier(ctx.identifier) is None:
        return ValidationResult(
            False, f"Invalid {level.value} identifier `{ctx.identifier}` (expected {ctx.descriptor.id_format})."
        )

    rel, content = parent_guide(ctx)
    if content is None:
        owner = tier_up(level) or level
        return ValidationResult(False, f"{owner.title} guide not found: `{rel}`.")
    if level != Level.FEATURE and find_section(content, level, ctx.identifier) is None:
        label = SECTION_LABELS[level]
        return ValidationResult(False, f"{label} {ctx.identifier} is not declared in `{rel}`.")

    if level != Level.FEATURE:
        parent = tier_up(level)
        pid = parent_id(level, ctx.identifier, ctx.project.feature)
        parent_status = DESCRIPTORS[parent].control_document.read_status(ctx.project, pid)
        if parent_status == Status.COMPLETE:
            return ValidationResult(False, f"{parent.title} {pid} is already complete. Reopen it first.")

    if current_status(ctx) == Status.COMPLETE:
        return ValidationResult(
            False, f"{level.title} {ctx.identifier} is already complete. Use /{level.value}-reopen to reopen it."
        )
    return ValidationResult(True)


def ensure_branch(ctx) -> BranchOutcome:
    chain = build_branch_chain(ctx.project, ctx.level, ctx.identifier)
    return ensure_level_branch(ctx.services.git, chain, ctx.services.config.git.root_branches)


def record_scope(ctx: StartContext) -> str:
    """Make the unit the active scope and mark it In Progress."""
    update = ctx.services.scope.update(ctx.level, ScopeEntry(id=ctx.identifier, name=unit_title(ctx)))
    status = current_status(ctx)
    if status in (None, Status.NOT_STARTED, Status.PLANNING):
        try:
            ctx.descriptor.control_document.write_status(ctx.project, ctx.identifier, Status.IN_PROGRESS)
        except DocumentNotFoundError as e:
            logger.warning(f"[START] Could not write status: {e}")
    return "\n".join([format_scope_display(update.current), *update.messages])


def read_context(ctx: StartContext) -> ReadResult:
    paths = ctx.descriptor.document_paths(ctx.project, ctx.identifier)
    title = unit_title(ctx)
    return ReadResult(
        label=f"{ctx.level.title} Handoff",
        handoff=ctx.project.read_optional(paths.handoff),
        document=unit_guide_text(ctx.project, ctx.level, ctx.identifier),
        section_title=f"{SECTION_LABELS.get(ctx.level, ctx.level.title)} {ctx.identifier}" + (f": {title}" if title else ""),
    )


def gather_changed_files(ctx: StartContext) -> str | None:
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    try:
        files = ctx.services.git.changed_files(parent)
    except WorkspaceError as e:
        logger.warning(f"[START] Could not gather changed files: {e}")
        return None
    if not files:
        return None
    shown = "\n".join(f"- `{f}`" for f in files[:20])
    more = f"\n- ... and {len(files) - 20} more" if len(files) > 20 else ""
    return f"## Files Already Changed\n\n{shown}{more}"


def governance_context(ctx: StartContext) -> str | None:
    return build_governance_context(ctx.services.auditor, ctx.level)


def open_questions(ctx: StartContext) -> list[str]:
    text = unit_guide_text(ctx.project, ctx.level, ctx.identifier) or ""
    return [q for q in bullet_items(text, "Open Questions") if not re.match(r"^\[[xX]\]", q)]


def first_child(ctx: StartContext) -> ChildRef | None:
    children = list_children(ctx.project, ctx.level, ctx.identifier)
    if not children:
        return None
    cid, _, status = children[0]
    return ChildRef(identifier=cid, started=status in STARTED)


def ensure_documents(ctx, paths: list[tuple[str, str]]) -> list[str]:
    created = []
    for rel, body in paths:
        if not ctx.project.exists(rel):
            ctx.project.write(rel, body)
            created.append(rel)
    return created


# ---------------------------------------------------------------------------
# End hooks
# ---------------------------------------------------------------------------

def governance_gate(ctx: EndContext) -> HookResult:
    report = ctx.services.auditor.run_gate(ctx.level, ctx.identifier, modified_files(ctx))
    text = format_report(report, "Governance Gate")
    if report.status != "fail":
        return HookResult(True, text)
    if ctx.params.override_reason:
        ctx.descriptor.append_log(
            ctx.project, ctx.identifier, "Governance override",
            f"**Reason:** {ctx.params.override_reason}\n**Follow-up:** {ctx.params.follow_up or 'none'}",
        )
        return HookResult(True, text + f"\n\n**Override accepted:** {ctx.params.override_reason}")
    return HookResult(
        False,
        text,
        reason_code=ReasonCode.GOVERNANCE_GATE_FAILED,
        status=OutcomeStatus.BLOCKED_FIX_REQUIRED,
        next_action="Fix the findings above, or re-run with overrideReason and followUp.",
        deliverables="\n".join(f"- {f['file']}:{f['line']} {f['description']}" for f in report.findings),
    )


def verify_commands(ctx: EndContext) -> HookResult:
    commands = ctx.services.config.verify.commands
    if not commands:
        return HookResult(True, "")
    result = run_verify(ctx.project.root, commands)
    if result.success:
        return HookResult(True, f"**Lint/typecheck passed** ({len(commands)} command(s)).")
    return HookResult(
        False,
        f"## Lint/typecheck failed: `{result.failed_command}`\n\n```\n{result.output[-4000:]}\n```",
        reason_code=ReasonCode.LINT_OR_TYPECHECK_FAILED,
        status=OutcomeStatus.BLOCKED_FIX_REQUIRED,
    )


def test_goal_validation(ctx: EndContext) -> HookResult:
    try:
        text = unit_guide_text(ctx.project, ctx.level, ctx.identifier) or ""
        validation = validate_test_goals(text, ctx.project.root)
    except OSError as e:
        return HookResult(
            False, f"Test goal validation could not run: {e}",
            reason_code=ReasonCode.TEST_GOAL_CHECK_FAILED, status=OutcomeStatus.FAILED,
        )
    if validation.success:
        return HookResult(True, f"**Test goals:** {validation.message}")
    return HookResult(
        False,
        f"**Test goals:** {validation.message}\n" + "\n".join(f"- {g}" for g in validation.missing),
        reason_code=ReasonCode.TEST_GOAL_VALIDATION_FAILED,
        status=OutcomeStatus.BLOCKED_FIX_REQUIRED,
        next_action="Add the missing tests or correct the test goals, then retry.",
    )


def run_tests(ctx: EndContext) -> HookResult:
    services = ctx.services
    try:
        result = services.tests.run(ctx.level, ctx.identifier, ctx.params.test_target)
    except OSError as e:
        return HookResult(
            False, f"**Test runner failed to start:** {e}",
            reason_code=ReasonCode.TEST_RUN_FAILED, status=OutcomeStatus.FAILED,
        )
    if result.success:
        return HookResult(True, f"**Tests:** {result.message}")

    output = str(result.results.get("output", ""))
    failure = f"## Tests failed\n\n{result.message}\n\n```\n{output[-3000:]}\n```"
    if not services.config.testing.analyze_errors:
        return HookResult(False, failure, reason_code=ReasonCode.TESTS_FAILED)
    try:
        analysis = analyze_test_error(output)
    except (ValueError, TypeError) as e:
        return HookResult(
            False, failure + f"\n\nFailure analysis crashed: {e}",
            reason_code=ReasonCode.TEST_ANALYSIS_FAILED, status=OutcomeStatus.FAILED,
        )

    detail = f"{failure}\n\n**Analysis:** {analysis.error_type} ({analysis.confidence} confidence). {analysis.recommendation}"
    files = "\n".join(f"- `{f}`" for f in analysis.affected_files) or None
    if analysis.is_test_code_error:
        if services.config.testing.allow_test_file_fixes:
            return HookResult(False, detail, reason_code=ReasonCode.TEST_CODE_FIX_REQUIRED, deliverables=files,
                              next_action="Fix the test code listed above, then retry.")
        return HookResult(
            False, detail,
            reason_code=ReasonCode.TEST_FIX_PERMISSION_REQUIRED,
            status=OutcomeStatus.BLOCKED_NEEDS_INPUT,
            deliverables=files,
            next_action="The tests themselves look wrong. Ask for permission to edit test files.",
        )
    if analysis.affected_files:
        return HookResult(False, detail, reason_code=ReasonCode.APP_CODE_TEST_FAILED, deliverables=files,
                          next_action="Fix the application code listed above, then retry.")
    return HookResult(False, detail, reason_code=ReasonCode.TESTS_FAILED)


def mark_complete(ctx: EndContext) -> str:
    try:
        ctx.descriptor.control_document.write_status(ctx.project, ctx.identifier, Status.COMPLETE)
    except DocumentNotFoundError as e:
        logger.warning(f"[END] Could not mark complete: {e}")
        return f"**Warning:** could not mark {ctx.level.value} {ctx.identifier} complete ({e})."
    files = modified_files(ctx)
    body = "**Files:**\n" + "\n".join(f"- `{f}`" for f in files) if files else "No files recorded."
    ctx.descriptor.append_log(ctx.project, ctx.identifier, "Completed", body)
    return f"{ctx.level.title} {ctx.identifier} marked {Status.COMPLETE.value}."


def write_handoff(ctx: EndContext, note: str) -> None:
    rel = ctx.descriptor.document_paths(ctx.project, ctx.identifier).handoff
    ctx.project.write(rel, f"# {ctx.level.title} {ctx.identifier} Handoff\n\n{note.strip()}\n")


def comment_cleanup(ctx: EndContext) -> HookResult:
    markers = ctx.services.config.comments.strip_markers
    if not markers:
        return HookResult(True, "")
    cleaned = []
    try:
        for rel in modified_files(ctx):
            path = ctx.project.path(rel)
            if not path.is_file():
                continue
            original = path.read_text(encoding="utf-8")
            kept = [line for line in original.split("\n") if not any(line.strip().startswith(m) for m in markers)]
            if len(kept) != len(original.split("\n")):
                path.write_text("\n".join(kept), encoding="utf-8")
                cleaned.append(rel)
    except (OSError, UnicodeDecodeError) as e:
        return HookResult(False, f"**Comment cleanup failed:** {e}", reason_code=ReasonCode.COMMENT_CLEANUP_FAILED)
    if not cleaned:
        return HookResult(True, "")
    return HookResult(True, "**Debug comments removed from:**\n" + "\n".join(f"- `{f}`" for f in cleaned))


def remove_planning_doc(ctx: EndContext) -> str | None:
    if ctx.project.remove(ctx.project.planning_doc(ctx.level, ctx.identifier)):
        return "Planning document removed."
    return None


def verification_items(ctx: EndContext) -> list[str]:
    text = unit_guide_text(ctx.project, ctx.level, ctx.identifier) or ""
    return [item[3:].strip() for item in bullet_items(text, "Verification") if item.startswith("[ ]")]


def before_audit(ctx: EndContext) -> dict:
    tests = ctx.step_results.get("tests")
    return {
        "files": modified_files(ctx),
        "tests": tests.model_dump() if tests else None,
    }


def commit(ctx: EndContext, summary: str) -> HookResult:
    git = ctx.services.git
    prefix = format_commit_prefix(ctx.services.scope.read(), ctx.level)
    message = f"{prefix} {ctx.params.commit_message or summary}"
    try:
        sha = git.commit(message)
    except WorkspaceError as e:
        return HookResult(False, f"**Commit failed:** {e}", reason_code=ReasonCode.GIT_FAILED)
    return HookResult(True, f"Committed `{sha[:8]}`: {message}" if sha else "Nothing to commit.")


def merge_into_parent(ctx: EndContext, summary: str) -> HookResult:
    committed = commit(ctx, summary)
    if not committed.success:
        return committed
    branch = ctx.descriptor.branch_name(ctx.project, ctx.identifier)
    parent = ctx.descriptor.parent_branch_name(ctx.project, ctx.identifier)
    merged = merge_level_branch(
        ctx.services.git, branch, parent, ctx.services.config.git.delete_merged_branches
    )
    lines = [committed.output, *merged.messages]
    if not merged.success:
        return HookResult(False, "\n".join(lines), reason_code=ReasonCode.GIT_FAILED)
    if ctx.params.push:
        pushed = push(ctx, parent)
        lines.append(pushed.output)
        if not pushed.success:
            return HookResult(False, "\n".join(lines), reason_code=ReasonCode.GIT_FAILED)
    return HookResult(True, "\n".join(lines))


def push(ctx: EndContext, branch: str) -> HookResult:
    try:
        ctx.services.git.push(branch)
    except WorkspaceError as e:
        return HookResult(False, f"**Push failed:** {e}", reason_code=ReasonCode.GIT_FAILED)
    return HookResult(True, f"Pushed `{branch}`.")


def commit_autofix(ctx: EndContext) -> HookResult:
    autofix = ctx.autofix_result
    if not autofix or not autofix.files_changed:
        return HookResult(True, "")
    try:
        sha = ctx.services.git.commit(f"{format_commit_prefix(ctx.services.scope.read(), ctx.level)} audit autofix")
    except WorkspaceError as e:
        return HookResult(False, f"**Autofix commit failed:** {e}", reason_code=ReasonCode.AUTOFIX_COMMIT_FAILED)
    return HookResult(True, f"Autofix committed `{sha[:8]}`." if sha else "")


def sibling_state(ctx: EndContext) -> SiblingState | None:
    parent_level = tier_up(ctx.level)
    if parent_level is None:
        return None
    pid = parent_id(ctx.level, ctx.identifier, ctx.project.feature)
    if not pid:
        return None
    guide = ctx.project.read_optional(DESCRIPTORS[parent_level].document_paths(ctx.project, pid).guide) or ""
    siblings = child_ids_in(guide, ctx.level, pid if parent_level != Level.FEATURE else None)
    if ctx.identifier not in siblings:
        siblings.append(ctx.identifier)

    status_of = ctx.descriptor.control_document.read_status
    position = siblings.index(ctx.identifier)
    next_id = siblings[position + 1] if position + 1 < len(siblings) else None
    return SiblingState(
        next_sibling_id=next_id,
        next_sibling_complete=bool(next_id) and status_of(ctx.project, next_id) == Status.COMPLETE,
        parent_id=pid,
        all_siblings_complete=all(status_of(ctx.project, s) == Status.COMPLETE for s in siblings),
    )
