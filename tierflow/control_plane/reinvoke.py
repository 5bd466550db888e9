"""Turn a decision's ``next_invoke`` into the next dispatcher call."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from tierflow.control_plane.types import NextInvoke
from tierflow.outcome import render_command

if TYPE_CHECKING:
    from tierflow.dispatcher import DispatchResult
    from tierflow.services import Services


def reinvoke(next_invoke: NextInvoke, repo_path: Path | None = None, services: "Services | None" = None) -> "DispatchResult":
    # The dispatcher imports the control plane; import it lazily here.
    from tierflow.dispatcher import dispatch

    logger.info(f"[CONTROL] Re-invoking {render_command(next_invoke.command)} with {next_invoke.params}")
    return dispatch(
        next_invoke.level,
        next_invoke.action,
        next_invoke.identifier,
        next_invoke.params,
        repo_path=repo_path,
        services=services,
    )
