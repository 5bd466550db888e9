"""
The four work levels, coarsest to finest, and navigation between them.

Levels are a closed set. Anything that needs per-level behaviour maps
over ``Level`` explicitly (see ``descriptors.DESCRIPTORS`` and
``dispatcher.LEVEL_BINDINGS``).
"""

from __future__ import annotations

from enum import Enum


class Level(str, Enum):
    FEATURE = "feature"
    PHASE = "phase"
    SESSION = "session"
    TASK = "task"

    @property
    def title(self) -> str:
        return self.value.capitalize()


LEVEL_ORDER: tuple[Level, ...] = (Level.FEATURE, Level.PHASE, Level.SESSION, Level.TASK)


def parse_level(value: str | Level) -> Level:
    """Coerce a level name into a ``Level``; raises ValueError on anything else."""
    if isinstance(value, Level):
        return value
    try:
        return Level(value.strip().lower())
    except ValueError:
        allowed = ", ".join(level.value for level in LEVEL_ORDER)
        raise ValueError(f"Unknown level '{value}'. Expected one of: {allowed}") from None


def level_index(level: Level) -> int:
    return LEVEL_ORDER.index(level)


def tier_up(level: Level) -> Level | None:
    """Parent level, or None for the coarsest level."""
    idx = level_index(level)
    return LEVEL_ORDER[idx - 1] if idx > 0 else None


def tier_down(level: Level) -> Level | None:
    """Child level, or None for the finest level."""
    idx = level_index(level)
    return LEVEL_ORDER[idx + 1] if idx + 1 < len(LEVEL_ORDER) else None


def descendants(level: Level) -> tuple[Level, ...]:
    """Every level below ``level``, nearest first."""
    return LEVEL_ORDER[level_index(level) + 1:]


def ancestors(level: Level) -> tuple[Level, ...]:
    """Every level above ``level``, coarsest first."""
    return LEVEL_ORDER[:level_index(level)]
