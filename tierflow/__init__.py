"""tierflow: tiered feature/phase/session/task workflow engine."""

from tierflow.identity import __version__

__all__ = ["__version__"]
