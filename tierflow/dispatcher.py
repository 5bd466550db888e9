"""
TIERFLOW Dispatcher: the entry point for every start / end / reopen call.

Picks the descriptor and hook set for the level from a fixed four-way map,
resolves the mode, runs the optional app preflight, runs the pipeline,
catches anything that escapes a hook (exactly once, here), routes the
outcome through the control plane and prefixes the mode enforcement text.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel

from tierflow.control_plane import (
    ControlPlaneContext,
    ControlPlaneDecision,
    format_question_instruction,
    route_by_outcome,
)
from tierflow.descriptors import DESCRIPTORS, UnitDescriptor
from tierflow.levels import Level, parse_level
from tierflow.mode import (
    END_DEFAULT_MODE,
    START_DEFAULT_MODE,
    ExecutionMode,
    enforce_mode_switch,
    resolve_mode,
)
from tierflow.outcome import (
    CommandAction,
    OutcomeStatus,
    ReasonCode,
    WorkflowResult,
    exit_result,
)
from tierflow.preflight import verify_app
from tierflow.services import Services, build_services
from tierflow.tiers import feature, phase, session, task
from tierflow.workflow.context import EndContext, EndParams, StartContext, StartOptions, end_identifier
from tierflow.workflow.end import run_end_workflow
from tierflow.workflow.hooks import EndHooks, ReopenHooks, StartHooks
from tierflow.workflow.reopen import ReopenContext, run_reopen_workflow
from tierflow.workflow.start import run_start_workflow


@dataclass(frozen=True)
class LevelBinding:
    descriptor: UnitDescriptor
    start_hooks: Callable[[], StartHooks]
    end_hooks: Callable[[], EndHooks]
    reopen_hooks: Callable[[], ReopenHooks]


LEVEL_BINDINGS: dict[Level, LevelBinding] = {
    Level.FEATURE: LevelBinding(DESCRIPTORS[Level.FEATURE], feature.start_hooks, feature.end_hooks, feature.reopen_hooks),
    Level.PHASE: LevelBinding(DESCRIPTORS[Level.PHASE], phase.start_hooks, phase.end_hooks, phase.reopen_hooks),
    Level.SESSION: LevelBinding(DESCRIPTORS[Level.SESSION], session.start_hooks, session.end_hooks, session.reopen_hooks),
    Level.TASK: LevelBinding(DESCRIPTORS[Level.TASK], task.start_hooks, task.end_hooks, task.reopen_hooks),
}


class DispatchResult(BaseModel):
    """Pipeline result plus what the caller must do next."""
    level: Level
    action: CommandAction
    identifier: str
    mode: ExecutionMode
    output: str
    result: WorkflowResult
    decision: ControlPlaneDecision

    @property
    def success(self) -> bool:
        return self.result.success


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def run_start(
    level: Level | str,
    identifier: str,
    options: StartOptions | dict[str, Any] | None = None,
    *,
    repo_path: Path | None = None,
    services: Services | None = None,
) -> DispatchResult:
    level = _level(level)
    call = _Invocation(level, "start", identifier, resolve_mode(options, START_DEFAULT_MODE), _raw_params(options))
    binding = LEVEL_BINDINGS[level]

    def prepare() -> Callable[[], WorkflowResult]:
        opts = options if isinstance(options, StartOptions) else StartOptions.model_validate(options or {})
        call.original_params = opts.model_dump(by_alias=True, exclude_none=True)
        scoped = _scoped(call, services, repo_path, opts.feature)

        def run() -> WorkflowResult:
            ctx = StartContext(
                descriptor=binding.descriptor,
                identifier=identifier,
                resolved_display_id=identifier,
                mode=call.mode,
                services=scoped,
                options=opts,
                resolved_description=opts.description,
            )
            return run_start_workflow(ctx, binding.start_hooks())

        return run

    return _finish(call, _guarded(call, prepare))


def run_end(
    level: Level | str,
    params: EndParams | dict[str, Any],
    *,
    repo_path: Path | None = None,
    services: Services | None = None,
) -> DispatchResult:
    level = _level(level)
    identifier = end_identifier(params)
    call = _Invocation(level, "end", identifier, resolve_mode(params, END_DEFAULT_MODE), _raw_params(params))
    call.original_params["identifier"] = identifier
    binding = LEVEL_BINDINGS[level]

    def prepare() -> Callable[[], WorkflowResult]:
        validated = params if isinstance(params, EndParams) else EndParams.model_validate(params)
        call.original_params = {**validated.model_dump(by_alias=True, exclude_defaults=True), "identifier": identifier}
        scoped = _scoped(call, services, repo_path, validated.feature)

        def run() -> WorkflowResult:
            if binding.descriptor.parse_identifier(identifier) is None:
                return exit_result(
                    f"Invalid {level.value} identifier `{identifier}` (expected {binding.descriptor.id_format}).",
                    OutcomeStatus.BLOCKED,
                    ReasonCode.VALIDATION_FAILED,
                    f"Re-run /{binding.descriptor.command_name('end')} with a valid identifier.",
                )
            ctx = EndContext(
                descriptor=binding.descriptor,
                identifier=identifier,
                params=validated,
                mode=call.mode,
                services=scoped,
            )
            return run_end_workflow(ctx, binding.end_hooks())

        return run

    return _finish(call, _guarded(call, prepare))


def run_reopen(
    level: Level | str,
    identifier: str,
    reason: str = "",
    options: dict[str, Any] | None = None,
    *,
    repo_path: Path | None = None,
    services: Services | None = None,
) -> DispatchResult:
    level = _level(level)
    options = dict(options or {})
    mode = resolve_mode(options, END_DEFAULT_MODE)
    call = _Invocation(level, "reopen", identifier, mode, {**options, "reason": reason})
    binding = LEVEL_BINDINGS[level]

    def prepare() -> Callable[[], WorkflowResult]:
        scoped = _scoped(call, services, repo_path, options.get("feature"))

        def run() -> WorkflowResult:
            ctx = ReopenContext(
                descriptor=binding.descriptor,
                identifier=identifier,
                resolved_display_id=identifier,
                mode=call.mode,
                services=scoped,
                reason=reason,
            )
            return run_reopen_workflow(ctx, binding.reopen_hooks())

        return run

    return _finish(call, _guarded(call, prepare, preflight=False))


def dispatch(
    level: Level | str,
    action: CommandAction,
    identifier: str,
    params: dict[str, Any] | None = None,
    *,
    repo_path: Path | None = None,
    services: Services | None = None,
) -> DispatchResult:
    """Generic entry used when re-invoking from a control-plane decision."""
    params = dict(params or {})
    if action == "start":
        return run_start(level, identifier, params, repo_path=repo_path, services=services)
    if action == "end":
        return run_end(level, {**params, "identifier": identifier}, repo_path=repo_path, services=services)
    if action == "reopen":
        reason = params.pop("reason", "")
        return run_reopen(level, identifier, reason, params, repo_path=repo_path, services=services)
    raise ValueError(f"Unknown action: {action}")


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

@dataclass
class _Invocation:
    """One dispatcher call. ``services`` stays None when they could not be built."""
    level: Level
    action: CommandAction
    identifier: str
    mode: ExecutionMode
    original_params: dict[str, Any]
    services: Services | None = None

    @property
    def name(self) -> str:
        return f"{self.level.value}-{self.action}"


def _level(level: Level | str) -> Level:
    return level if isinstance(level, Level) else parse_level(level)


def _raw_params(params: Any) -> dict[str, Any]:
    if isinstance(params, BaseModel):
        return params.model_dump(by_alias=True, exclude_none=True)
    return dict(params) if isinstance(params, dict) else {}


def _scoped(
    call: _Invocation,
    services: Services | None,
    repo_path: Path | None,
    feature_override: str | None,
) -> Services:
    if services is None:
        # Plan runs stay read-only, so no event log is attached.
        services = build_services(Path(repo_path or Path.cwd()), record_events=call.mode == "execute")
    call.services = services.for_feature(services.resolve_feature(call.level, call.identifier, feature_override))
    return call.services


def _guarded(
    call: _Invocation,
    prepare: Callable[[], Callable[[], WorkflowResult]],
    preflight: bool = True,
) -> WorkflowResult:
    """Everything past argument parsing runs here; an escaping exception is caught once."""
    name = call.name
    logger.info(f"[DISPATCH] /{name} {call.identifier} (mode={call.mode})")
    try:
        run = prepare()

        checks = call.services.config.preflight
        wanted = checks.on_start if call.action == "start" else checks.on_end
        if preflight and wanted and call.mode == "execute":
            app = verify_app(checks)
            if not app.success:
                return exit_result(
                    app.output, OutcomeStatus.FAILED, ReasonCode.APP_CHECK_FAILED,
                    f"Start the app, then re-run /{name} {call.identifier}.",
                )

        return run()
    except Exception as e:
        logger.exception(f"[DISPATCH] /{name} {call.identifier} raised")
        return exit_result(
            f"**{name} failed with unhandled error:** {e}",
            OutcomeStatus.FAILED,
            ReasonCode.UNHANDLED_ERROR,
            f"Investigate the error, then retry /{name} {call.identifier}.",
        )


def _finish(call: _Invocation, result: WorkflowResult) -> DispatchResult:
    decision = route_by_outcome(
        result,
        ControlPlaneContext(
            level=call.level, action=call.action, identifier=call.identifier, original_params=call.original_params,
        ),
    )
    name = call.name
    enforcement = enforce_mode_switch(decision.required_mode, name, "normal" if result.success else "failure")
    parts = [enforcement.text, "---", result.output]
    instruction = format_question_instruction(decision)
    if instruction:
        parts.append(instruction)

    if call.services is not None:
        call.services.bus.emit(
            "dispatch_decision",
            "dispatcher",
            {
                "command": name,
                "identifier": call.identifier,
                "mode": call.mode,
                "reason_code": result.outcome.reason_code,
                "stop": decision.stop,
                "question_key": decision.question_key.value if decision.question_key else None,
            },
        )
    logger.info(f"[DISPATCH] /{name} {call.identifier}: {result.outcome.reason_code} (stop={decision.stop})")
    return DispatchResult(
        level=call.level,
        action=call.action,
        identifier=call.identifier,
        mode=call.mode,
        output="\n\n".join(p for p in parts if p),
        result=result,
        decision=decision,
    )
