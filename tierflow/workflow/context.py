"""
Workflow contexts threaded through the start and end pipelines.

A context is created per run and owned by that run. Steps never get the
context itself: the runner hands each step a ``ContextSlice`` that only lets
it assign the fields it declared with ``@writes``. The output buffer and the
step-result map are append-only and open to every step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tierflow.descriptors import UnitDescriptor
from tierflow.mode import ExecutionMode
from tierflow.outcome import Outcome, StepRecord
from tierflow.services import Services


class OutputBuffer:
    """Ordered, append-only sequence of output blocks."""

    def __init__(self) -> None:
        self._parts: list[str] = []

    def append(self, text: str | None) -> None:
        if text and text.strip():
            self._parts.append(text.rstrip())

    def extend(self, texts: list[str]) -> None:
        for text in texts:
            self.append(text)

    def text(self, separator: str = "\n\n") -> str:
        return separator.join(self._parts)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._parts))

    def __len__(self) -> int:
        return len(self._parts)


# ---------------------------------------------------------------------------
# Caller-supplied options
# ---------------------------------------------------------------------------

class _CallerModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("mode", mode="before", check_fields=False)
    @classmethod
    def _drop_malformed_mode(cls, value: Any) -> Any:
        # resolve_mode falls back to the default for anything unusable.
        return value if isinstance(value, str) else None


class StartOptions(_CallerModel):
    mode: str | None = None
    context_gathering_complete: bool = False
    description: str | None = None
    feature: str | None = None


_IDENTIFIER_KEYS = (
    "identifier", "taskId", "task_id", "sessionId", "session_id",
    "phaseId", "phase_id", "featureId", "feature_id",
)


class EndParams(_CallerModel):
    identifier: str = ""
    mode: str | None = None
    run_tests: bool | None = None
    test_target: str | None = None
    modified_files: list[str] = Field(default_factory=list)
    commit_message: str | None = None
    skip_git: bool = False
    push: bool = False
    continue_past_verification: bool = False
    override_reason: str | None = None
    follow_up: str | None = None
    feature: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _collect_identifier(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("identifier"):
            identifier = end_identifier(data)
            if identifier:
                return {**data, "identifier": identifier}
        return data


def end_identifier(data: Any) -> str:
    """The unit identifier from raw end params, whichever key the caller used."""
    if isinstance(data, EndParams):
        return data.identifier
    if not isinstance(data, dict):
        return ""
    for key in _IDENTIFIER_KEYS:
        if data.get(key):
            return str(data[key])
    return ""


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------

@dataclass
class ReadResult:
    label: str | None = None
    handoff: str | None = None
    document: str | None = None
    section_title: str | None = None


@dataclass
class StartContext:
    descriptor: UnitDescriptor
    identifier: str
    resolved_display_id: str
    mode: ExecutionMode
    services: Services
    options: StartOptions
    output: OutputBuffer = field(default_factory=OutputBuffer)
    resolved_description: str | None = None
    read_result: ReadResult | None = None
    planning_document_path: str | None = None
    # Problems found by validation while previewing in plan mode.
    validation_notes: list[str] = field(default_factory=list)

    @property
    def level(self):
        return self.descriptor.level

    @property
    def project(self):
        return self.services.project


@dataclass
class EndContext:
    descriptor: UnitDescriptor
    identifier: str
    params: EndParams
    mode: ExecutionMode
    services: Services
    output: OutputBuffer = field(default_factory=OutputBuffer)
    step_results: dict[str, StepRecord] = field(default_factory=dict)
    should_run_tests: bool = False
    outcome: Outcome | None = None
    audit_payload: dict[str, Any] | None = None
    autofix_result: Any = None

    @property
    def level(self):
        return self.descriptor.level

    @property
    def project(self):
        return self.services.project

    def record(self, step: str, success: bool, output: str = "") -> None:
        self.step_results[step] = StepRecord(success=success, output=output)


# ---------------------------------------------------------------------------
# Write slices
# ---------------------------------------------------------------------------

def writes(*fields: str) -> Callable:
    """Declare which context fields a step (and the hooks it calls) may assign."""
    def decorate(step: Callable) -> Callable:
        step.writes = frozenset(fields)
        return step
    return decorate


class ContextSlice:
    """Read access to the whole context, write access to declared fields only."""

    __slots__ = ("_ctx", "_writable")

    def __init__(self, ctx: Any, writable: frozenset[str]):
        object.__setattr__(self, "_ctx", ctx)
        object.__setattr__(self, "_writable", writable)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._ctx, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name not in self._writable:
            raise AttributeError(f"step may not assign context field '{name}'")
        setattr(self._ctx, name, value)
