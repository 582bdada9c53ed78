"""
Configuration Management Module
"""
from .settings import (
    Settings,
    GeneralSettings,
    LLMSettings,
    ResearchSettings,
    get_settings,
    get_general_settings,
    get_llm_settings,
    get_research_settings,
)

__all__ = [
    "Settings",
    "GeneralSettings",
    "LLMSettings",
    "ResearchSettings",
    "get_settings",
    "get_general_settings",
    "get_llm_settings",
    "get_research_settings",
]
