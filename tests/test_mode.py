from tierflow.mode import (
    END_DEFAULT_MODE,
    START_DEFAULT_MODE,
    enforce_mode_switch,
    operator_mode_for,
    resolve_mode,
)
from tierflow.workflow.context import EndParams, StartOptions


def test_defaults_are_asymmetric():
    assert START_DEFAULT_MODE == "plan"
    assert END_DEFAULT_MODE == "execute"


def test_resolve_mode_falls_back_on_missing_or_malformed():
    assert resolve_mode(None, "plan") == "plan"
    assert resolve_mode({}, "execute") == "execute"
    assert resolve_mode({"mode": "bogus"}, "execute") == "execute"
    assert resolve_mode({"mode": 3}, "plan") == "plan"
    assert resolve_mode(object(), "plan") == "plan"


def test_resolve_mode_reads_mappings_and_models():
    assert resolve_mode({"mode": " Execute "}, "plan") == "execute"
    assert resolve_mode(StartOptions(mode="execute"), "plan") == "execute"
    assert resolve_mode(EndParams(identifier="2.2.1", mode="plan"), "execute") == "plan"


def test_operator_mode():
    assert operator_mode_for("plan") == "plan"
    assert operator_mode_for("execute") == "agent"


def test_failure_enforcement_is_a_hard_stop():
    text = enforce_mode_switch("plan", "session-end", "failure").text
    assert text.startswith("## STOP: `/session-end` Failed (Plan/Ask Mode Required)")
    assert "retry, investigate, or skip" in text


def test_normal_enforcement_names_the_mode():
    assert enforce_mode_switch("plan", "task-start").text.startswith("## Mode: Plan (Ask)")
    assert enforce_mode_switch("agent", "task-start").text.startswith("## Mode: Agent")
