"""Controller singleton shared by the web routes."""

from __future__ import annotations

from typing import Optional

from intelligence.service import ResearchService
from orchestrator import ResearchController


_CONTROLLER: Optional[ResearchController] = None


def build_controller() -> ResearchController:
    """Controller over the configured LLM provider."""
    return ResearchController(ResearchService())


def get_controller() -> ResearchController:
    global _CONTROLLER
    if _CONTROLLER is None:
        _CONTROLLER = build_controller()
    return _CONTROLLER
