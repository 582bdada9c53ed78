"""Core contracts shared by the controller, service and web layers."""

from .contracts import (
    APPROVAL_SCORE,
    MAX_SCORE,
    MIN_SCORE,
    TERMINAL_PHASES,
    CompiledReport,
    CompletionOutcome,
    FollowUpAnswer,
    LogEntry,
    Phase,
    Report,
    ResearchSnapshot,
    ReviewResult,
    SearchQuery,
    Source,
    dedupe_sources,
    merge_sources,
)

__all__ = [
    "APPROVAL_SCORE",
    "MAX_SCORE",
    "MIN_SCORE",
    "TERMINAL_PHASES",
    "CompiledReport",
    "CompletionOutcome",
    "FollowUpAnswer",
    "LogEntry",
    "Phase",
    "Report",
    "ResearchSnapshot",
    "ReviewResult",
    "SearchQuery",
    "Source",
    "dedupe_sources",
    "merge_sources",
]
