"""Research workflow controller: brainstorm, refine, compile, review, rewrite."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Set

from core import (
    CompletionOutcome,
    LogEntry,
    Phase,
    Report,
    ResearchSnapshot,
    SearchQuery,
    dedupe_sources,
)
from intelligence.cancellation import CancellationToken
from intelligence.service import GenerationService
from utils.exceptions import AbortedError, ServiceFailure, WorkflowStateError

from .store import ResearchLog


logger = logging.getLogger(__name__)


class ResearchObserver:
    """Display-side hooks. Receives copies; cannot change controller state."""

    def on_phase(self, phase: Phase) -> None:
        pass

    def on_log(self, entry: LogEntry) -> None:
        pass

    def on_report(self, report: Optional[Report]) -> None:
        pass


class ResearchController:
    """
    Owns the phase, log, report, query set and retry counter of one research
    workflow and drives the generation service through them.

    Exactly one pipeline (main run or follow-up) is active at a time, tied to
    a single ``CancellationToken``. Starting a new run signals and replaces the
    token; a run only mutates state while its token is still the current one,
    so late responses from a superseded run are dropped.
    """

    def __init__(
        self,
        service: GenerationService,
        *,
        max_retries: Optional[int] = None,
    ) -> None:
        if max_retries is None:
            from config import get_research_settings

            max_retries = get_research_settings().max_retries

        self._service = service
        self._max_retries = max(0, int(max_retries))

        self._phase = Phase.IDLE
        self._log = ResearchLog()
        self._topic: Optional[str] = None
        self._report: Optional[Report] = None
        self._queries: List[SearchQuery] = []
        self._retry_count = 0
        self._outcome: Optional[CompletionOutcome] = None

        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._observers: List[ResearchObserver] = []

    # ------------------------------------------------------------------ #
    # read side
    # ------------------------------------------------------------------ #

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def report(self) -> Optional[Report]:
        return self._report.model_copy(deep=True) if self._report else None

    @property
    def outcome(self) -> Optional[CompletionOutcome]:
        return self._outcome

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def logs(self) -> List[LogEntry]:
        return self._log.entries()

    def snapshot(self) -> ResearchSnapshot:
        return ResearchSnapshot(
            phase=self._phase,
            topic=self._topic,
            running=self.is_running,
            logs=self._log.entries(),
            report=self.report,
            queries=list(self._queries),
            retry_count=self._retry_count,
            max_retries=self._max_retries,
            outcome=self._outcome,
        )

    def add_observer(self, observer: ResearchObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: ResearchObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # ------------------------------------------------------------------ #
    # operations
    # ------------------------------------------------------------------ #

    def start(self, topic: str) -> asyncio.Task:
        """Reset state and schedule a new research run. Must be called inside a running loop."""
        topic = str(topic or "").strip()
        if not topic:
            raise ValueError("topic is required")

        loop = asyncio.get_running_loop()
        self._invalidate_token("superseded by a new run")

        token = CancellationToken("research")
        self._token = token
        self._log = ResearchLog()
        self._topic = topic
        self._queries = []
        self._retry_count = 0
        self._outcome = None
        self._set_report(None)
        self._set_phase(Phase.BRAINSTORMING)
        self._append_log(Phase.IDLE, f'Starting research on: "{topic}"')

        return self._spawn(loop, self._run_pipeline(topic, token), token, self._abort_research)

    def stop(self) -> None:
        """Signal the active run or follow-up. No-op when nothing is active."""
        if self._token is not None:
            self._token.cancel("stopped by user")

    def follow_up(self, question: str) -> asyncio.Task:
        """Schedule a follow-up question against the committed report."""
        question = str(question or "").strip()
        if not question:
            raise ValueError("question is required")
        if self.is_running:
            raise WorkflowStateError("A research pipeline is still running", {"phase": self._phase.value})
        if self._report is None:
            raise WorkflowStateError("No report to ask about; run a research first")
        if self._phase != Phase.COMPLETED:
            raise WorkflowStateError(
                "Follow-up questions need a completed research run", {"phase": self._phase.value}
            )

        loop = asyncio.get_running_loop()
        self._invalidate_token("superseded by a follow-up")

        token = CancellationToken("follow_up")
        self._token = token
        self._set_phase(Phase.SEARCHING)
        self._append_log(Phase.SEARCHING, f'Processing follow-up question: "{question}"')

        return self._spawn(loop, self._run_follow_up(question, token), token, self._abort_follow_up)

    async def research(self, topic: str) -> ResearchSnapshot:
        """Run a research pipeline to its end and return the final snapshot."""
        await self.start(topic)
        return self.snapshot()

    async def ask(self, question: str) -> ResearchSnapshot:
        """Run a follow-up to its end and return the final snapshot."""
        await self.follow_up(question)
        return self.snapshot()

    # ------------------------------------------------------------------ #
    # main pipeline
    # ------------------------------------------------------------------ #

    async def _run_pipeline(self, topic: str, token: CancellationToken) -> None:
        try:
            await self._research(topic, token)
        except AbortedError:
            self._abort_research(token)
        except asyncio.CancelledError:
            token.cancel("task cancelled")
            self._abort_research(token)
            raise
        except ServiceFailure as exc:
            if self._is_current(token):
                self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected error in research pipeline")
            if self._is_current(token):
                self._fail(exc)
        finally:
            self._release(token)

    async def _research(self, topic: str, token: CancellationToken) -> None:
        self._checkpoint(token)
        self._append_log(Phase.BRAINSTORMING, "Brainstorming search queries...")
        initial = await self._service.brainstorm(topic, token=token)
        self._checkpoint(token)
        if not initial:
            raise ServiceFailure("Brainstorming returned no queries")
        self._append_log(
            Phase.BRAINSTORMING,
            f"Generated {len(initial)} initial queries",
            [q.model_dump() for q in initial],
        )

        self._set_phase(Phase.REFLECTING)
        self._append_log(Phase.REFLECTING, "Reflecting and refining queries...")
        refined = await self._service.refine(initial, token=token)
        self._checkpoint(token)
        if not refined:
            raise ServiceFailure("Reflection returned no queries")
        self._queries = list(refined)
        self._append_log(
            Phase.REFLECTING,
            f"Selected top {len(refined)} queries",
            [q.model_dump() for q in refined],
        )

        await self._compile_and_review(topic, token)

    async def _compile_and_review(self, topic: str, token: CancellationToken) -> None:
        feedback: Optional[str] = None
        previous_body: Optional[str] = None

        for attempt in range(self._max_retries + 1):
            self._retry_count = attempt
            self._checkpoint(token)

            self._set_phase(Phase.SEARCHING)
            self._append_log(Phase.SEARCHING, "Searching the web and compiling report...")
            compiled = await self._service.search_and_compile(
                topic,
                list(self._queries),
                feedback=feedback,
                previous_report=previous_body,
                token=token,
            )
            self._checkpoint(token)

            self._set_phase(Phase.COMPILING)
            sources = dedupe_sources(compiled.sources)
            report = Report(
                topic=topic,
                markdown=compiled.markdown,
                sources=sources,
                version=attempt + 1,
            )
            self._set_report(report)
            self._append_log(
                Phase.COMPILING,
                f"Report compiled. Sources found: {len(sources)}",
                {"version": report.version, "sources": len(sources)},
            )

            self._set_phase(Phase.REVIEWING)
            self._append_log(Phase.REVIEWING, "Sending report to reviewer agent...")
            review = await self._service.review(topic, report.markdown, token=token)
            self._checkpoint(token)
            self._set_report(report.with_review(review))
            self._append_log(Phase.REVIEWING, f"Review complete. Score: {review.score}/5", review.feedback)

            if review.approved:
                self._complete(CompletionOutcome.APPROVED, "Report approved! Research complete.")
                return
            if attempt >= self._max_retries:
                self._complete(
                    CompletionOutcome.BEST_EFFORT,
                    "Max retries reached. Finalizing report despite low score.",
                )
                return

            feedback = review.feedback
            previous_body = report.markdown
            self._retry_count = attempt + 1
            self._append_log(Phase.REVIEWING, "Score too low (<4). Initiating rewrite loop.")
            self._set_phase(Phase.REWRITING)
            self._append_log(
                Phase.REWRITING,
                f"Rewriting report (attempt {self._retry_count}/{self._max_retries})...",
                {"feedback": feedback},
            )

    def _abort_research(self, token: CancellationToken) -> None:
        if self._is_current(token):
            self._set_report(None)
            self._append_log(Phase.IDLE, "Research stopped by user.")
            self._set_phase(Phase.IDLE)

    def _complete(self, outcome: CompletionOutcome, message: str) -> None:
        self._outcome = outcome
        self._append_log(Phase.COMPLETED, message)
        self._set_phase(Phase.COMPLETED)

    def _fail(self, exc: BaseException) -> None:
        self._append_log(Phase.ERROR, "An error occurred", str(exc) or exc.__class__.__name__)
        self._set_phase(Phase.ERROR)

    # ------------------------------------------------------------------ #
    # follow-up
    # ------------------------------------------------------------------ #

    async def _run_follow_up(self, question: str, token: CancellationToken) -> None:
        base = self._report
        try:
            self._checkpoint(token)
            result = await self._service.follow_up(base.topic, base.markdown, question, token=token)
            self._checkpoint(token)

            updated = base.with_follow_up(question, result.answer, dedupe_sources(result.sources))
            self._set_report(updated)
            self._append_log(
                Phase.COMPLETED,
                "Follow-up answer added to report.",
                {"new_sources_found": len(updated.sources) - len(base.sources)},
            )
            self._set_phase(Phase.COMPLETED)
        except AbortedError:
            self._abort_follow_up(token)
        except asyncio.CancelledError:
            token.cancel("task cancelled")
            self._abort_follow_up(token)
            raise
        except Exception as exc:
            if not isinstance(exc, ServiceFailure):
                logger.exception("Unexpected error in follow-up")
            if self._is_current(token):
                # the last good report stays visible
                self._append_log(Phase.ERROR, "An error occurred", str(exc) or exc.__class__.__name__)
                self._set_phase(Phase.COMPLETED)
        finally:
            self._release(token)

    def _abort_follow_up(self, token: CancellationToken) -> None:
        if self._is_current(token):
            self._append_log(Phase.COMPLETED, "Follow-up stopped by user.")
            self._set_phase(Phase.COMPLETED)

    # ------------------------------------------------------------------ #
    # plumbing
    # ------------------------------------------------------------------ #

    def _spawn(
        self,
        loop: asyncio.AbstractEventLoop,
        coro: Any,
        token: CancellationToken,
        on_abort: Callable[[CancellationToken], None],
    ) -> asyncio.Task:
        task = loop.create_task(coro)
        self._task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda done: self._on_task_done(done, token, on_abort))
        return task

    def _on_task_done(
        self,
        task: asyncio.Task,
        token: CancellationToken,
        on_abort: Callable[[CancellationToken], None],
    ) -> None:
        # a task cancelled before its first step never reaches its own handlers
        if task.cancelled() and self._is_current(token):
            token.cancel("task cancelled")
            on_abort(token)
            self._release(token)

    def _is_current(self, token: CancellationToken) -> bool:
        return token is self._token

    def _checkpoint(self, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        if not self._is_current(token):
            raise AbortedError(token=token.id, reason="stale run")

    def _invalidate_token(self, reason: str) -> None:
        if self._token is not None:
            self._token.cancel(reason)
            self._token = None

    def _release(self, token: CancellationToken) -> None:
        if self._is_current(token):
            self._token = None

    def _set_phase(self, phase: Phase) -> None:
        if phase == self._phase:
            return
        logger.debug("Phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
        self._notify("on_phase", phase)

    def _set_report(self, report: Optional[Report]) -> None:
        self._report = report
        self._notify("on_report", report.model_copy(deep=True) if report else None)

    def _append_log(self, phase: Phase, message: str, details: Optional[Any] = None) -> LogEntry:
        entry = self._log.append(phase, message, details)
        level = logging.ERROR if phase == Phase.ERROR else logging.INFO
        if details is not None and phase == Phase.ERROR:
            logger.log(level, "[%s] %s: %s", phase.value, entry.message, details)
        else:
            logger.log(level, "[%s] %s", phase.value, entry.message)
        self._notify("on_log", entry.model_copy(deep=True))
        return entry

    def _notify(self, method: str, *args: Any) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, method)(*args)
            except Exception:
                logger.exception("Observer %r failed in %s", observer, method)
