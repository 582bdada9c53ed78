"""
Chat Agent
Answers follow-up questions about a finished report, grounded by web search.
"""

from __future__ import annotations

from typing import Optional
import logging

from core import FollowUpAnswer
from intelligence.cancellation import CancellationToken, guarded
from intelligence.llm import BaseLLM, get_llm
from utils.exceptions import ServiceFailure


logger = logging.getLogger(__name__)

_FOLLOW_UP_PROMPT = """CONTEXT:
The user is reading a research report on "{topic}".

CURRENT REPORT CONTENT (may be truncated):
{report}

USER QUESTION:
"{question}"

TASK:
Answer the follow-up question thoroughly.
Search the web for up-to-date information whenever the report does not answer it or the answer needs verification.
Format the answer in Markdown. Do not repeat the report; give only the answer."""


class ChatAgent:
    """Report-grounded follow-up answers."""

    def __init__(self, llm: Optional[BaseLLM] = None, *, context_chars: int = 20000):
        self.llm = llm or get_llm()
        self.context_chars = max(1, int(context_chars))

    async def answer(
        self,
        topic: str,
        report_body: str,
        question: str,
        *,
        token: Optional[CancellationToken] = None,
    ) -> FollowUpAnswer:
        prompt = _FOLLOW_UP_PROMPT.format(
            topic=topic,
            report=(report_body or "")[: self.context_chars],
            question=question,
        )
        response = await guarded(token, self.llm.achat(prompt, grounding=True))
        if not response.has_content:
            raise ServiceFailure("No follow-up answer returned by model", provider=self.llm.provider)

        return FollowUpAnswer(answer=response.content, sources=list(response.citations))
