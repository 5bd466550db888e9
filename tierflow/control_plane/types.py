"""Control-plane contract shared by the router, its handlers and the dispatcher."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from tierflow.levels import Level
from tierflow.mode import OperatorMode
from tierflow.outcome import CommandAction, CommandDescriptor


class QuestionKey(str, Enum):
    """Which structured prompt the operator is shown."""
    APPROVE_EXECUTE = "approve_execute"
    CONTEXT_GATHERING = "context_gathering"
    CASCADE = "cascade"
    PUSH_CONFIRMATION = "push_confirmation"
    VERIFICATION_OPTIONS = "verification_options"
    FAILURE_OPTIONS = "failure_options"
    REOPEN_OPTIONS = "reopen_options"
    UNCOMMITTED_CHANGES = "uncommitted_changes"


class ControlPlaneContext(BaseModel):
    level: Level
    action: CommandAction
    identifier: str
    # Parameters of the original invocation, reused when re-invoking.
    original_params: dict[str, Any] = Field(default_factory=dict)


class NextInvoke(BaseModel):
    level: Level
    action: CommandAction
    identifier: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def command(self) -> CommandDescriptor:
        return CommandDescriptor(level=self.level, action=self.action, identifier=self.identifier)


class ControlPlaneDecision(BaseModel):
    """
    stop=True: do not proceed; show ``message`` and wait for the operator.
    ``next_invoke`` is what to run when the operator approves.
    """
    stop: bool
    required_mode: OperatorMode
    message: str
    question_key: QuestionKey | None = None
    next_invoke: NextInvoke | None = None
    cascade_command: str | None = None
