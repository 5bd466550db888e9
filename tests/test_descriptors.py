from pathlib import Path

import pytest

from tierflow.descriptors import DESCRIPTORS
from tierflow.documents import Project, Status, find_section, read_section_status, write_section_status
from tierflow.identifiers import child_ids_in, next_sibling_id, parent_id, parse_session_id, parse_task_id
from tierflow.levels import Level, descendants, parse_level, tier_down, tier_up
from tierflow.workspace.branches import build_branch_chain

from conftest import PHASE_GUIDE, SESSION_GUIDE

PROJECT = Project(root=Path("/repo"), feature="booking")


def test_level_navigation():
    assert tier_up(Level.FEATURE) is None
    assert tier_down(Level.TASK) is None
    assert tier_up(Level.TASK) == Level.SESSION
    assert descendants(Level.PHASE) == (Level.SESSION, Level.TASK)
    assert parse_level(" Session ") == Level.SESSION
    with pytest.raises(ValueError):
        parse_level("epic")


def test_identifier_parsing():
    parsed = parse_task_id("2.2.1.3")
    assert parsed.session_id == "2.2.1"
    assert parsed.number == 3
    assert parse_task_id("2.2.1") is None
    assert parse_session_id("2.2.x") is None
    assert parent_id(Level.TASK, "2.2.1.3") == "2.2.1"
    assert parent_id(Level.PHASE, "2.2", "booking") == "booking"
    assert next_sibling_id(Level.TASK, "2.2.1.9") == "2.2.1.10"


def test_child_ids_sorted_numerically():
    content = "### Session 2.2.10: Late\n### Session 2.2.2: Holds\n### Session 2.3.1: Other\n"
    assert child_ids_in(content, Level.SESSION, "2.2") == ["2.2.2", "2.2.10"]


def test_document_paths():
    session = DESCRIPTORS[Level.SESSION].document_paths(PROJECT, "2.2.1")
    assert session.guide == ".project-manager/features/booking/sessions/session-2-2-1-guide.md"
    assert DESCRIPTORS[Level.TASK].document_paths(PROJECT, "2.2.1.3") == session
    feature = DESCRIPTORS[Level.FEATURE].document_paths(PROJECT, "booking")
    assert feature.handoff == ".project-manager/features/booking/feature-booking-handoff.md"


def test_branch_names():
    assert DESCRIPTORS[Level.FEATURE].branch_name(PROJECT, "booking") == "feature/booking"
    assert DESCRIPTORS[Level.PHASE].branch_name(PROJECT, "2.2") == "booking-phase-2.2"
    assert DESCRIPTORS[Level.SESSION].branch_name(PROJECT, "2.2.1") == "booking-phase-2.2-session-2.2.1"
    assert DESCRIPTORS[Level.TASK].branch_name(PROJECT, "2.2.1.3") is None
    chain = build_branch_chain(PROJECT, Level.TASK, "2.2.1.3")
    assert [link.branch for link in chain] == ["feature/booking", "booking-phase-2.2", "booking-phase-2.2-session-2.2.1"]


def test_unresolved_feature_placeholder():
    project = Project(root=Path("/repo"))
    assert DESCRIPTORS[Level.PHASE].branch_name(project, "2.2") == "unresolved-feature-phase-2.2"


def test_task_status_lives_in_session_section():
    assert read_section_status(SESSION_GUIDE, Level.TASK, "2.2.1.3") == Status.IN_PROGRESS
    updated = write_section_status(SESSION_GUIDE, Level.TASK, "2.2.1.3", Status.COMPLETE)
    assert read_section_status(updated, Level.TASK, "2.2.1.3") == Status.COMPLETE
    assert read_section_status(updated, Level.TASK, "2.2.1.1") == Status.COMPLETE
    # The session's own status line is untouched.
    assert updated.startswith("# Session 2.2.1: Availability\n\n**Status:** In Progress")


def test_checked_heading_counts_as_complete():
    content = "## Tasks\n\n- [x] #### Task 1.1.1.1: Done thing\n"
    assert read_section_status(content, Level.TASK, "1.1.1.1") == Status.COMPLETE


def test_find_section_bounds():
    section = find_section(PHASE_GUIDE, Level.SESSION, "2.2.1")
    assert section.title == "Availability"
    assert "Holds" not in section.body
