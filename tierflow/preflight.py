"""
App readiness check run by the dispatcher before an execute-mode pipeline
when ``preflight.on_start`` / ``preflight.on_end`` is enabled.

Polls a TCP port until it accepts a connection or the configured timeout
elapses. Never hangs: the timeout is enforced by the retry policy.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass

from loguru import logger
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_delay, wait_fixed

from tierflow.config_loader import PreflightConfig


class AppNotReady(Exception):
    pass


@dataclass
class PreflightResult:
    success: bool
    output: str


def _probe(host: str, port: int) -> None:
    try:
        with socket.create_connection((host, port), timeout=1.0):
            return
    except OSError as e:
        raise AppNotReady(f"{host}:{port} not accepting connections ({e})") from e


def verify_app(config: PreflightConfig) -> PreflightResult:
    poll = retry(
        stop=stop_after_delay(config.timeout_seconds),
        wait=wait_fixed(config.poll_interval_seconds),
        retry=retry_if_exception_type(AppNotReady),
    )(_probe)
    target = f"{config.host}:{config.port}"
    try:
        poll(config.host, config.port)
    except RetryError as e:
        cause = e.last_attempt.exception()
        logger.warning(f"[PREFLIGHT] App not reachable at {target}: {cause}")
        return PreflightResult(
            success=False,
            output=(
                f"**App check failed:** nothing is listening on `{target}` after "
                f"{config.timeout_seconds:g}s. Start the app and retry."
            ),
        )
    logger.info(f"[PREFLIGHT] App reachable at {target}")
    return PreflightResult(success=True, output=f"App reachable at `{target}`.")
