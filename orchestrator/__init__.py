"""Research workflow orchestration."""

from .controller import ResearchController, ResearchObserver
from .store import ResearchLog

__all__ = [
    "ResearchController",
    "ResearchObserver",
    "ResearchLog",
]
