"""
Utils Module
Logging and error types
"""
from .logger import setup_logger, setup_from_settings
from .exceptions import (
    ResearchAgentError,
    ConfigurationError,
    ServiceFailure,
    AbortedError,
    WorkflowStateError,
)

__all__ = [
    "setup_logger",
    "setup_from_settings",
    "ResearchAgentError",
    "ConfigurationError",
    "ServiceFailure",
    "AbortedError",
    "WorkflowStateError",
]
