"""
Report Writer Agent
Search-grounded report compilation, including feedback-driven rewrites.
"""

from __future__ import annotations

from typing import Optional, Sequence
import logging

from core import CompiledReport, SearchQuery
from intelligence.cancellation import CancellationToken, guarded
from intelligence.llm import BaseLLM, Message, get_llm
from utils.exceptions import ServiceFailure


logger = logging.getLogger(__name__)

_WRITER_SYSTEM_PROMPT = (
    "You are a meticulous research writer. You always search the web for current information "
    "before writing and you cite the sources you rely on."
)

COMPILE_PROMPT = """Write a comprehensive, professional research report on: "{topic}".

Use these search angles to guide the research, and follow further leads where useful:
{angles}

Structure the report with clear headings, bullet points where they help, and a summary.
Keep the tone detailed and academic.

Use web search to find up-to-date information and cite sources inline or at the end."""

REWRITE_BLOCK = """

---
PREVIOUS VERSION:
{previous_report}

REVIEWER FEEDBACK TO ADDRESS:
{feedback}

Rewrite the report so that it addresses this feedback specifically while keeping the strong parts of the previous version."""


def build_compile_prompt(
    topic: str,
    queries: Sequence[SearchQuery],
    feedback: Optional[str] = None,
    previous_report: Optional[str] = None,
) -> str:
    """Research prompt; the rewrite block is added only when both feedback and a previous body exist."""
    angles = ", ".join(q.query for q in queries)
    prompt = COMPILE_PROMPT.format(topic=topic, angles=angles)
    if feedback and previous_report:
        prompt += REWRITE_BLOCK.format(previous_report=previous_report, feedback=feedback)
    return prompt


class ReportWriterAgent:
    """Compiles grounded research reports."""

    def __init__(self, llm: Optional[BaseLLM] = None):
        self.llm = llm or get_llm()
        if not self.llm.supports_grounding:
            logger.warning("%r does not support search grounding; reports will carry no sources", self.llm)

    async def compile(
        self,
        topic: str,
        queries: Sequence[SearchQuery],
        *,
        feedback: Optional[str] = None,
        previous_report: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> CompiledReport:
        prompt = build_compile_prompt(topic, queries, feedback, previous_report)
        response = await guarded(
            token,
            self.llm.acomplete(
                [Message.system(_WRITER_SYSTEM_PROMPT), Message.user(prompt)],
                grounding=True,
            ),
        )
        if not response.has_content:
            raise ServiceFailure("No report returned by model", provider=self.llm.provider)

        # citations are passed through as returned; the controller dedupes them
        return CompiledReport(markdown=response.content, sources=list(response.citations))
