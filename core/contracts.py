"""Canonical data contracts for the research workflow."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


APPROVAL_SCORE = 4
MIN_SCORE = 1
MAX_SCORE = 5


class Phase(str, Enum):
    """Controller phase. Exactly one is active at a time."""

    IDLE = "IDLE"
    BRAINSTORMING = "BRAINSTORMING"
    REFLECTING = "REFLECTING"
    SEARCHING = "SEARCHING"
    COMPILING = "COMPILING"
    REVIEWING = "REVIEWING"
    REWRITING = "REWRITING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({Phase.IDLE, Phase.COMPLETED, Phase.ERROR})


class CompletionOutcome(str, Enum):
    """How a completed run ended."""

    APPROVED = "approved"
    BEST_EFFORT = "best_effort"


class SearchQuery(BaseModel):
    """Web search query with the angle it covers."""

    model_config = ConfigDict(frozen=True)

    query: str
    rationale: str = ""

    @field_validator("query", mode="before")
    @classmethod
    def _non_empty_query(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("query is required")
        return text

    @field_validator("rationale", mode="before")
    @classmethod
    def _strip_rationale(cls, value: Any) -> str:
        return str(value or "").strip()


class Source(BaseModel):
    """Grounding citation."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    uri: str

    @field_validator("uri", mode="before")
    @classmethod
    def _non_empty_uri(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("uri is required")
        return text


def dedupe_sources(sources: Iterable[Source]) -> List[Source]:
    """Drop repeated uris, keeping the first occurrence and the original order."""
    unique: List[Source] = []
    seen = set()
    for source in sources:
        if source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique


def merge_sources(existing: Iterable[Source], new: Iterable[Source]) -> List[Source]:
    """Append sources whose uri is not already present."""
    return dedupe_sources([*existing, *new])


class ReviewResult(BaseModel):
    """Reviewer verdict. ``approved`` is derived from the score."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    feedback: str = ""

    @computed_field
    @property
    def approved(self) -> bool:
        return self.score >= APPROVAL_SCORE


class Report(BaseModel):
    """Research report. Replaced, never mutated in place."""

    model_config = ConfigDict(frozen=True)

    topic: str
    markdown: str
    sources: List[Source] = Field(default_factory=list)
    score: Optional[int] = Field(default=None, ge=MIN_SCORE, le=MAX_SCORE)
    feedback: Optional[str] = None
    version: int = Field(default=1, ge=1)

    @field_validator("sources")
    @classmethod
    def _unique_sources(cls, value: List[Source]) -> List[Source]:
        return dedupe_sources(value)

    def with_review(self, review: ReviewResult) -> "Report":
        return self.model_copy(update={"score": review.score, "feedback": review.feedback})

    def with_follow_up(self, question: str, answer: str, sources: Iterable[Source]) -> "Report":
        """Append a follow-up answer; version, score and feedback are untouched."""
        markdown = f"{self.markdown}\n\n---\n\n### Follow-up: {question}\n\n{answer}"
        return self.model_copy(
            update={"markdown": markdown, "sources": merge_sources(self.sources, sources)}
        )


class CompiledReport(BaseModel):
    """Grounded search-and-compile output."""

    markdown: str
    sources: List[Source] = Field(default_factory=list)


class FollowUpAnswer(BaseModel):
    """Grounded follow-up answer."""

    answer: str
    sources: List[Source] = Field(default_factory=list)


class LogEntry(BaseModel):
    """Append-only progress event consumed by display collaborators."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    phase: Phase
    message: str
    details: Optional[Any] = None


class ResearchSnapshot(BaseModel):
    """Read-only view of the controller state."""

    phase: Phase
    topic: Optional[str] = None
    running: bool = False
    logs: List[LogEntry] = Field(default_factory=list)
    report: Optional[Report] = None
    queries: List[SearchQuery] = Field(default_factory=list)
    retry_count: int = 0
    max_retries: int = 0
    outcome: Optional[CompletionOutcome] = None
