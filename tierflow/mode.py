"""
Execution mode: plan (preview only, nothing mutates) or execute.

Start pipelines default to plan, end pipelines default to execute.
The operator-facing mode is what the calling agent must be in to act on a
result: "plan" (ask the operator) or "agent" (carry on with changes).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel

ExecutionMode = Literal["plan", "execute"]
OperatorMode = Literal["plan", "agent"]

START_DEFAULT_MODE: ExecutionMode = "plan"
END_DEFAULT_MODE: ExecutionMode = "execute"

_VALID_MODES = ("plan", "execute")


def resolve_mode(options: Any, default: ExecutionMode) -> ExecutionMode:
    """
    Pick the execution mode from caller options.

    Accepts a mapping, an object with a ``mode`` attribute, or None. Missing
    or unrecognised values fall back to ``default``; this never raises.
    """
    if options is None:
        return default
    if isinstance(options, Mapping):
        raw = options.get("mode")
    else:
        raw = getattr(options, "mode", None)
    if isinstance(raw, str) and raw.strip().lower() in _VALID_MODES:
        return raw.strip().lower()  # type: ignore[return-value]
    return default


def is_plan_mode(mode: ExecutionMode) -> bool:
    return mode == "plan"


def operator_mode_for(mode: ExecutionMode) -> OperatorMode:
    return "plan" if mode == "plan" else "agent"


def mode_gate_text(mode: OperatorMode, command_name: str | None = None) -> str:
    """One-line reminder of the mode the operator must be in before running a command."""
    cmd = f" `/{command_name}`" if command_name else ""
    if mode == "plan":
        return f"**Mode gate:** Switch to Plan (Ask) mode before running{cmd} so the plan can be reviewed."
    return f"**Mode gate:** Switch to Agent mode before executing changes{cmd}."


class ModeEnforcement(BaseModel):
    required_mode: OperatorMode
    text: str


def enforce_mode_switch(
    required_mode: OperatorMode,
    command_name: str,
    reason: Literal["normal", "failure"] = "normal",
) -> ModeEnforcement:
    """Header prepended to every dispatch result stating the mode to be in."""
    cmd = f"`/{command_name}`"
    if required_mode == "plan" and reason == "failure":
        text = (
            f"## STOP: {cmd} Failed (Plan/Ask Mode Required)\n\n"
            "Hard stop. Choose: retry, investigate, or skip."
        )
    elif required_mode == "plan":
        text = f"## Mode: Plan (Ask): {cmd}\n\nReview the result with the operator before continuing."
    else:
        text = f"## Mode: Agent: {cmd}\n\nContinue in Agent mode."
    return ModeEnforcement(required_mode=required_mode, text=text)
