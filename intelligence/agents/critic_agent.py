"""
Critic Agent
Scores a compiled report 1-5 and explains what should improve.
"""

from __future__ import annotations

from typing import Any, Optional
import logging

from core import MAX_SCORE, MIN_SCORE, ReviewResult
from intelligence.cancellation import CancellationToken, guarded
from intelligence.llm import BaseLLM, get_llm
from utils.exceptions import ServiceFailure

from .parsing import extract_json


logger = logging.getLogger(__name__)

REVIEW_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "INTEGER"},
        "feedback": {"type": "STRING"},
    },
    "required": ["score", "feedback"],
}

_REVIEW_PROMPT = """You are a strict academic editor. Review this research report on "{topic}".

Report:
{report}

Score it from 1 to 5 against these criteria:
1. Relevance to the topic
2. Depth of information
3. Clarity and structure
4. Quality of content

5 is excellent, 4 is good enough to publish, anything below 4 needs a rewrite.
Give constructive, specific feedback for improvement.

Respond with JSON: {{"score": <integer 1-5>, "feedback": "..."}}"""


def _coerce_score(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        score = int(round(float(str(value).strip())))
    except (TypeError, ValueError):
        return None
    return max(MIN_SCORE, min(MAX_SCORE, score))


class CriticAgent:
    """Quality gate for compiled reports."""

    def __init__(self, llm: Optional[BaseLLM] = None):
        self.llm = llm or get_llm()

    async def review(
        self,
        topic: str,
        report_body: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> ReviewResult:
        prompt = _REVIEW_PROMPT.format(topic=topic, report=report_body)
        response = await guarded(token, self.llm.achat(prompt, json_schema=REVIEW_SCHEMA))
        if not response.has_content:
            raise ServiceFailure("No review returned by model", provider=self.llm.provider)

        parsed = extract_json(response.content)
        if not isinstance(parsed, dict):
            raise ServiceFailure(
                "Unparseable review response",
                provider=self.llm.provider,
                content=response.content[:500],
            )

        score = _coerce_score(parsed.get("score"))
        if score is None:
            raise ServiceFailure(
                "Review response carries no score",
                provider=self.llm.provider,
                content=response.content[:500],
            )

        # any "approved" flag in the payload is ignored; approval derives from the score
        return ReviewResult(score=score, feedback=str(parsed.get("feedback") or "").strip())
