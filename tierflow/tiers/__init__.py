"""Per-level hook sets for the start, end and reopen pipelines."""

from tierflow.tiers import feature, phase, session, task

__all__ = ["feature", "phase", "session", "task"]
