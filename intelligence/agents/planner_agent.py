"""
Planner Agent
Brainstorms candidate search queries and reflects on them to keep the best few.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence
import json
import logging

from pydantic import ValidationError

from core import SearchQuery
from intelligence.cancellation import CancellationToken, guarded
from intelligence.llm import BaseLLM, get_llm
from utils.exceptions import ServiceFailure

from .parsing import extract_json


logger = logging.getLogger(__name__)

QUERY_LIST_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "query": {"type": "STRING"},
            "rationale": {"type": "STRING"},
        },
        "required": ["query", "rationale"],
    },
}

_BRAINSTORM_PROMPT = """You are a senior research analyst.
Research topic: "{topic}"

Propose {count} specific, high-value web search queries that together cover this topic comprehensively.
For every query give a one-line rationale naming the angle it covers.

Respond with a JSON array of objects: [{{"query": "...", "rationale": "..."}}]"""

_REFINE_PROMPT = """Candidate web search queries:
{queries}

Choose the {count} queries that cover the breadth and depth of the topic most efficiently.
Reword a query where that makes it work better with a search engine, and keep its rationale.

Respond with a JSON array of objects: [{{"query": "...", "rationale": "..."}}]"""


class QueryPlannerAgent:
    """Query brainstorming and reflection."""

    def __init__(self, llm: Optional[BaseLLM] = None):
        self.llm = llm or get_llm()

    @staticmethod
    def _parse_queries(content: str) -> List[SearchQuery]:
        parsed: Any = extract_json(content)
        if isinstance(parsed, dict):
            parsed = parsed.get("queries")
        if not isinstance(parsed, list):
            return []

        queries: List[SearchQuery] = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            try:
                queries.append(SearchQuery(query=item.get("query"), rationale=item.get("rationale")))
            except ValidationError:
                logger.debug("Dropping malformed query entry: %r", item)
        return queries

    async def _ask(self, prompt: str, token: Optional[CancellationToken], step: str) -> List[SearchQuery]:
        response = await guarded(token, self.llm.achat(prompt, json_schema=QUERY_LIST_SCHEMA))
        if not response.has_content:
            raise ServiceFailure(f"No response from model during {step}", provider=self.llm.provider)

        queries = self._parse_queries(response.content)
        if not queries:
            raise ServiceFailure(
                f"Model returned no usable queries during {step}",
                provider=self.llm.provider,
                content=response.content[:500],
            )
        return queries

    async def brainstorm(
        self,
        topic: str,
        *,
        count: int = 10,
        token: Optional[CancellationToken] = None,
    ) -> List[SearchQuery]:
        prompt = _BRAINSTORM_PROMPT.format(topic=topic, count=count)
        queries = await self._ask(prompt, token, "brainstorming")
        logger.debug("Brainstormed %d queries for %r", len(queries), topic)
        return queries

    async def refine(
        self,
        queries: Sequence[SearchQuery],
        *,
        count: int = 5,
        token: Optional[CancellationToken] = None,
    ) -> List[SearchQuery]:
        payload = json.dumps([q.model_dump() for q in queries], ensure_ascii=False)
        prompt = _REFINE_PROMPT.format(queries=payload, count=count)
        refined = await self._ask(prompt, token, "reflection")
        return refined[:count]
