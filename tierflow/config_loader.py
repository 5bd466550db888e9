"""
Configuration loader for TIERFLOW.
Merges defaults with per-repo .tierflow/config.yaml overrides.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from tierflow.levels import Level


class ConfigError(Exception):
    pass


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class DocsConfig(BaseModel):
    root: str = ".project-manager"
    scope_file: str = ".project-manager/.tier-scope"
    legacy_scope_file: str | None = ".project-manager/.current-feature"


class GitConfig(BaseModel):
    root_branches: list[str] = Field(default_factory=lambda: ["develop", "main", "master"])
    remote: str = "origin"
    delete_merged_branches: bool = True
    ignore_dirty_paths: list[str] = Field(default_factory=list)


class TestingConfig(BaseModel):
    enabled: bool = True
    command: str = "python -m pytest -q"
    default_run_tests: bool = False
    require_explicit: list[Level] = Field(default_factory=lambda: [Level.SESSION])
    validate_goals: bool = True
    analyze_errors: bool = True
    allow_test_file_fixes: bool = False
    timeout_seconds: int = 900


class VerifyConfig(BaseModel):
    commands: list[str] = Field(default_factory=list)


class AuditConfig(BaseModel):
    enabled: bool = True
    autofix: bool = True
    reports_dir: str = ".tierflow/audit-reports"
    fail_on: list[str] = Field(default_factory=lambda: ["secret_detected"])
    long_function_lines: int = 60


class CommentConfig(BaseModel):
    strip_markers: list[str] = Field(default_factory=list)


class PreflightConfig(BaseModel):
    on_start: bool = False
    on_end: bool = False
    host: str = "127.0.0.1"
    port: int = 3000
    timeout_seconds: float = 10
    poll_interval_seconds: float = 0.5


class LoggingConfig(BaseModel):
    events_file: str | None = ".tierflow/logs/events.jsonl"


class TierflowConfig(BaseModel):
    docs: DocsConfig = Field(default_factory=DocsConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    testing: TestingConfig = Field(default_factory=TestingConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    comments: CommentConfig = Field(default_factory=CommentConfig)
    preflight: PreflightConfig = Field(default_factory=PreflightConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

_ENV_OVERRIDES = {
    "TIERFLOW_TEST_COMMAND": ("testing", "command"),
    "TIERFLOW_DOCS_ROOT": ("docs", "root"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return data


def load_config(repo_path: Path | None = None) -> TierflowConfig:
    """
    Load config by merging:
      1. Built-in defaults (tierflow/config.yaml)
      2. Repo-level overrides (<repo>/.tierflow/config.yaml)
      3. Environment variable overrides
    """
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    if repo_path:
        repo_config = Path(repo_path) / ".tierflow" / "config.yaml"
        if repo_config.exists():
            base = _deep_merge(base, _read_yaml(repo_config))

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            base = _deep_merge(base, {section: {key: value}})

    try:
        return TierflowConfig(**base)
    except ValidationError as e:
        raise ConfigError(f"Invalid tierflow configuration:\n{e}") from e


def config_sources(repo_path: Path | None = None) -> dict[str, bool]:
    """Which config layers are present, for `tierflow status`."""
    repo_config = Path(repo_path) / ".tierflow" / "config.yaml" if repo_path else None
    return {
        "built-in defaults": _DEFAULT_CONFIG_PATH.exists(),
        ".tierflow/config.yaml": bool(repo_config and repo_config.exists()),
        **{name: bool(os.environ.get(name)) for name in _ENV_OVERRIDES},
    }
