"""
Agents Module
One agent per generation step
"""
from .planner_agent import QueryPlannerAgent
from .writer_agent import ReportWriterAgent, build_compile_prompt
from .critic_agent import CriticAgent
from .chat_agent import ChatAgent
from .parsing import extract_json

__all__ = [
    "QueryPlannerAgent",
    "ReportWriterAgent",
    "build_compile_prompt",
    "CriticAgent",
    "ChatAgent",
    "extract_json",
]
