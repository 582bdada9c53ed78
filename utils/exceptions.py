"""
Custom Exceptions
Error types raised across the research workflow.
"""
from typing import Optional


class ResearchAgentError(Exception):
    """Base error for the research agent."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ResearchAgentError):
    """Missing or invalid configuration."""
    pass


class ServiceFailure(ResearchAgentError):
    """
    Generation service failure.

    Raised for empty or unparseable model responses and for provider/transport
    errors. Terminal for the current run; never retried automatically.
    """

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class AbortedError(ResearchAgentError):
    """A cancellation token was signaled before, during or after a service call."""

    def __init__(self, message: str = "Aborted", **kwargs):
        super().__init__(message, kwargs)


class WorkflowStateError(ResearchAgentError):
    """Operation not allowed in the current workflow state (no report yet, or a pipeline is running)."""
    pass
