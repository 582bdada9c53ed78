"""
Intelligence Module
LLM abstraction, step agents and the generation service facade
"""
from .llm import BaseLLM, GeminiLLM, get_llm
from .cancellation import CancellationToken, guarded
from .agents import QueryPlannerAgent, ReportWriterAgent, CriticAgent, ChatAgent
from .service import GenerationService, ResearchService

__all__ = [
    # LLM
    "BaseLLM",
    "GeminiLLM",
    "get_llm",
    # Cancellation
    "CancellationToken",
    "guarded",
    # Agents
    "QueryPlannerAgent",
    "ReportWriterAgent",
    "CriticAgent",
    "ChatAgent",
    # Service
    "GenerationService",
    "ResearchService",
]
