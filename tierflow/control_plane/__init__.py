from tierflow.control_plane.prompts import format_question_instruction
from tierflow.control_plane.router import ROUTES, route_by_outcome
from tierflow.control_plane.types import (
    ControlPlaneContext,
    ControlPlaneDecision,
    NextInvoke,
    QuestionKey,
)

__all__ = [
    "ROUTES",
    "ControlPlaneContext",
    "ControlPlaneDecision",
    "NextInvoke",
    "QuestionKey",
    "format_question_instruction",
    "route_by_outcome",
]
