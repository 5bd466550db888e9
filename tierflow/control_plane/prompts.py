"""Instruction block telling the calling agent to present a structured choice."""

from __future__ import annotations

from tierflow.control_plane.types import ControlPlaneDecision, QuestionKey

QUESTION_OPTIONS: dict[QuestionKey, str] = {
    QuestionKey.APPROVE_EXECUTE: "Yes, execute | No, revise",
    QuestionKey.CONTEXT_GATHERING: (
        "One option per open question from the message above, plus "
        '"I\'m satisfied with our plan and ready to begin"'
    ),
    QuestionKey.CASCADE: "Yes, run the cascade command | No, stop here",
    QuestionKey.PUSH_CONFIRMATION: "Yes, push to remote | No, skip push",
    QuestionKey.VERIFICATION_OPTIONS: (
        "Add a follow-up task/session/phase | I'll verify manually; continue the end | Skip; continue the end"
    ),
    QuestionKey.FAILURE_OPTIONS: "Retry the command | Investigate the issue | Skip and continue manually",
    QuestionKey.REOPEN_OPTIONS: "Yes, I have a plan file | No, plan from scratch | No, just a quick fix",
    QuestionKey.UNCOMMITTED_CHANGES: "Commit changes | Skip (stash and continue)",
}


def format_question_instruction(decision: ControlPlaneDecision) -> str:
    if decision.question_key is None:
        return ""
    options = QUESTION_OPTIONS[decision.question_key]
    if decision.question_key == QuestionKey.CASCADE and decision.cascade_command:
        options += f" (Yes = run: {decision.cascade_command})"
    return "\n".join([
        f"**Required: ask the operator (`{decision.question_key.value}`) with clickable options.**",
        "Do not write the question as plain chat text; present the message above as a structured choice.",
        f"Options for this prompt: {options}",
    ])
