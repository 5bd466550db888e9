"""
TIERFLOW Checks: test runs, test failure analysis, test-goal validation and
lint/typecheck verification.

Everything here shells out with ``subprocess`` and reports structured
results; nothing raises for an ordinary failing command.
"""

from __future__ import annotations

import re
import shlex
import subprocess
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from tierflow.config_loader import TestingConfig
from tierflow.levels import Level

TEST_FILE_RE = re.compile(r"(^|/)(tests?/|test_[^/]+\.py$|[^/]+_test\.py$|[^/]+\.(test|spec)\.[jt]sx?$)")
TRACEBACK_FILE_RE = re.compile(r'File "([^"]+)", line \d+|^([\w./-]+\.(?:py|[jt]sx?)):\d+', re.MULTILINE)
TEST_CODE_ERRORS = ("SyntaxError", "ImportError", "ModuleNotFoundError", "fixture", "NameError", "IndentationError")


def is_test_file(path: str) -> bool:
    return bool(TEST_FILE_RE.search(path.replace("\\", "/")))


class TestRunResult(BaseModel):
    success: bool
    message: str
    results: dict[str, Any] = Field(default_factory=dict)


class ErrorAnalysis(BaseModel):
    is_test_code_error: bool
    error_type: str
    confidence: str
    affected_files: list[str] = Field(default_factory=list)
    recommendation: str = ""


class GoalValidation(BaseModel):
    success: bool
    message: str
    missing: list[str] = Field(default_factory=list)


class VerifyResult(BaseModel):
    success: bool
    output: str = ""
    failed_command: str | None = None


# ---------------------------------------------------------------------------
# Test runner
# ---------------------------------------------------------------------------

class TestRunner:
    """Runs the configured test command in the repository."""
    __test__ = False

    def __init__(self, repo_path: Path, config: TestingConfig):
        self.repo_path = Path(repo_path).resolve()
        self.config = config

    def run(self, level: Level, identifier: str, target: str | None = None) -> TestRunResult:
        cmd = shlex.split(self.config.command)
        if target:
            cmd.append(target)
        logger.info(f"[TESTS] {level.value} {identifier}: {' '.join(cmd)}")
        try:
            proc = subprocess.run(
                cmd, cwd=self.repo_path, capture_output=True, text=True,
                timeout=self.config.timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return TestRunResult(
                success=False,
                message=f"Tests timed out after {self.config.timeout_seconds}s",
                results={"command": " ".join(cmd), "timed_out": True},
            )
        output = (proc.stdout + "\n" + proc.stderr).strip()
        success = proc.returncode == 0
        return TestRunResult(
            success=success,
            message="Tests passed" if success else f"Tests failed (exit {proc.returncode})",
            results={"command": " ".join(cmd), "returncode": proc.returncode, "output": output[-8000:]},
        )


# ---------------------------------------------------------------------------
# Failure analysis
# ---------------------------------------------------------------------------

def analyze_test_error(output: str) -> ErrorAnalysis:
    """
    Decide whether a failing run points at the tests themselves or at the
    application code, from the files named in the traceback.
    """
    files = []
    for match in TRACEBACK_FILE_RE.finditer(output or ""):
        path = match.group(1) or match.group(2)
        if path and "site-packages" not in path and path not in files:
            files.append(path)

    test_files = [f for f in files if is_test_file(f)]
    app_files = [f for f in files if not is_test_file(f)]
    error_type = next((name for name in TEST_CODE_ERRORS if name in (output or "")), "AssertionError")

    if test_files and not app_files:
        is_test_error = error_type != "AssertionError"
        return ErrorAnalysis(
            is_test_code_error=is_test_error,
            error_type=error_type,
            confidence="high" if is_test_error else "medium",
            affected_files=test_files,
            recommendation=(
                "The failure is inside test code; fix the test."
                if is_test_error else "Assertions in the tests fail; check the behaviour under test."
            ),
        )
    if app_files:
        return ErrorAnalysis(
            is_test_code_error=False,
            error_type=error_type,
            confidence="high" if test_files else "medium",
            affected_files=app_files,
            recommendation="The failure originates in application code; fix the code under test.",
        )
    return ErrorAnalysis(
        is_test_code_error=False,
        error_type="unknown",
        confidence="low",
        recommendation="Could not locate the failure; inspect the test output.",
    )


# ---------------------------------------------------------------------------
# Test goals
# ---------------------------------------------------------------------------

_GOAL_PATH_RE = re.compile(r"`([^`]+)`")


def validate_test_goals(section_text: str, repo_path: Path) -> GoalValidation:
    """
    Every bullet under ``**Test Goals:**`` must name (in backticks) a test
    file that exists. No goals listed means nothing to validate.
    """
    goals: list[str] = []
    inside = False
    for line in section_text.splitlines():
        stripped = line.strip()
        if stripped.startswith("**Test Goals:**"):
            inside = True
            continue
        if inside:
            if stripped.startswith(("- ", "* ")):
                goals.append(stripped[2:])
            elif stripped:
                break

    if not goals:
        return GoalValidation(success=True, message="No test goals declared.")

    missing = []
    for goal in goals:
        paths = _GOAL_PATH_RE.findall(goal)
        if not paths or not any((Path(repo_path) / p).exists() for p in paths):
            missing.append(goal)
    if missing:
        return GoalValidation(
            success=False,
            message=f"{len(missing)} of {len(goals)} test goal(s) have no matching test file.",
            missing=missing,
        )
    return GoalValidation(success=True, message=f"All {len(goals)} test goal(s) covered.")


# ---------------------------------------------------------------------------
# Lint / typecheck
# ---------------------------------------------------------------------------

def run_verify(repo_path: Path, commands: list[str], timeout: int = 600) -> VerifyResult:
    outputs = []
    for command in commands:
        logger.info(f"[TESTS] verify: {command}")
        try:
            proc = subprocess.run(
                shlex.split(command), cwd=repo_path, capture_output=True, text=True, timeout=timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            return VerifyResult(success=False, output=str(e), failed_command=command)
        outputs.append(f"$ {command}\n{(proc.stdout + proc.stderr).strip()}")
        if proc.returncode != 0:
            return VerifyResult(success=False, output="\n\n".join(outputs), failed_command=command)
    return VerifyResult(success=True, output="\n\n".join(outputs))
