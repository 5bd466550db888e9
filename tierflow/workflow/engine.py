"""
Shared step runner for both pipelines.

Runs steps in order, each against a write slice of the context, and stops
at the first one that returns a result.
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

from loguru import logger

from tierflow.outcome import WorkflowResult
from tierflow.workflow.context import ContextSlice

Step = Callable[[Any, Any], "WorkflowResult | None"]


def step_name(step: Step) -> str:
    return step.__name__.removeprefix("step_")


def run_step(pipeline: str, step: Step, ctx: Any, hooks: Any) -> WorkflowResult | None:
    writable = getattr(step, "writes", frozenset())
    result = step(ContextSlice(ctx, writable), hooks)
    name = step_name(step)
    if result is None:
        logger.debug(f"[{pipeline.upper()}] {name}: continue")
        ctx.services.bus.emit("step_completed", pipeline, {"step": name, "identifier": ctx.identifier})
        return None
    step_results = getattr(ctx, "step_results", None)
    if step_results:
        result.steps = {**step_results, **result.steps}
    logger.info(f"[{pipeline.upper()}] {name}: exit ({result.outcome.reason_code})")
    ctx.services.bus.emit(
        "step_exited",
        pipeline,
        {
            "step": name,
            "identifier": ctx.identifier,
            "reason_code": result.outcome.reason_code,
            "status": result.outcome.status.value,
        },
    )
    return result


def run_pipeline(pipeline: str, steps: Sequence[Step], terminal: Step, ctx: Any, hooks: Any) -> WorkflowResult:
    """Run ``steps`` with short-circuit, then ``terminal`` if none exited."""
    bus = ctx.services.bus
    bus.emit("pipeline_started", pipeline, {"level": ctx.level.value, "identifier": ctx.identifier, "mode": ctx.mode})
    for step in steps:
        result = run_step(pipeline, step, ctx, hooks)
        if result is not None:
            break
    else:
        result = run_step(pipeline, terminal, ctx, hooks)
        if result is None:
            raise RuntimeError(f"terminal step {step_name(terminal)} returned no result")
    bus.emit(
        "pipeline_finished",
        pipeline,
        {
            "level": ctx.level.value,
            "identifier": ctx.identifier,
            "success": result.success,
            "reason_code": result.outcome.reason_code,
        },
    )
    return result
