"""Generation service used by the research controller."""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from core import CompiledReport, FollowUpAnswer, ReviewResult, SearchQuery
from intelligence.agents import ChatAgent, CriticAgent, QueryPlannerAgent, ReportWriterAgent
from intelligence.cancellation import CancellationToken
from intelligence.llm import BaseLLM, get_llm


class GenerationService(Protocol):
    """Calls the controller makes. Every call honors ``token`` by raising ``AbortedError``."""

    async def brainstorm(
        self, topic: str, *, token: Optional[CancellationToken] = None
    ) -> List[SearchQuery]: ...

    async def refine(
        self, queries: Sequence[SearchQuery], *, token: Optional[CancellationToken] = None
    ) -> List[SearchQuery]: ...

    async def search_and_compile(
        self,
        topic: str,
        queries: Sequence[SearchQuery],
        *,
        feedback: Optional[str] = None,
        previous_report: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> CompiledReport: ...

    async def review(
        self, topic: str, report_body: str, *, token: Optional[CancellationToken] = None
    ) -> ReviewResult: ...

    async def follow_up(
        self,
        topic: str,
        report_body: str,
        question: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> FollowUpAnswer: ...


def _positive(name: str, value: int) -> int:
    if int(value) < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return int(value)


class ResearchService:
    """``GenerationService`` backed by one LLM shared by the step agents."""

    def __init__(
        self,
        llm: Optional[BaseLLM] = None,
        *,
        brainstorm_count: Optional[int] = None,
        refined_count: Optional[int] = None,
        followup_context_chars: Optional[int] = None,
    ) -> None:
        from config import get_research_settings

        settings = get_research_settings()
        self.brainstorm_count = _positive(
            "brainstorm_count", settings.brainstorm_count if brainstorm_count is None else brainstorm_count
        )
        self.refined_count = _positive(
            "refined_count", settings.refined_count if refined_count is None else refined_count
        )
        if followup_context_chars is None:
            followup_context_chars = settings.followup_context_chars
        self.llm = llm or get_llm()

        self.planner = QueryPlannerAgent(self.llm)
        self.writer = ReportWriterAgent(self.llm)
        self.critic = CriticAgent(self.llm)
        self.chat = ChatAgent(
            self.llm,
            context_chars=_positive("followup_context_chars", followup_context_chars),
        )

    async def brainstorm(self, topic, *, token=None):
        return await self.planner.brainstorm(topic, count=self.brainstorm_count, token=token)

    async def refine(self, queries, *, token=None):
        return await self.planner.refine(queries, count=self.refined_count, token=token)

    async def search_and_compile(self, topic, queries, *, feedback=None, previous_report=None, token=None):
        return await self.writer.compile(
            topic,
            queries,
            feedback=feedback,
            previous_report=previous_report,
            token=token,
        )

    async def review(self, topic, report_body, *, token=None):
        return await self.critic.review(topic, report_body, token=token)

    async def follow_up(self, topic, report_body, question, *, token=None):
        return await self.chat.answer(topic, report_body, question, token=token)

    async def aclose(self) -> None:
        await self.llm.aclose()
