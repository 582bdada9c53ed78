"""Tests for the research workflow controller."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from core import CompletionOutcome, LogEntry, Phase, Report, Source
from fakes import FakeService
from orchestrator import ResearchController, ResearchObserver
from utils.exceptions import ServiceFailure, WorkflowStateError


class _Recorder(ResearchObserver):
    def __init__(self) -> None:
        self.phases: List[Phase] = []
        self.entries: List[LogEntry] = []
        self.reports: List[Optional[Report]] = []

    def on_phase(self, phase: Phase) -> None:
        self.phases.append(phase)

    def on_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def on_report(self, report: Optional[Report]) -> None:
        self.reports.append(report)


def _messages(controller: ResearchController) -> List[str]:
    return [entry.message for entry in controller.logs()]


def _errors(controller: ResearchController) -> List[LogEntry]:
    return [entry for entry in controller.logs() if entry.phase == Phase.ERROR]


def test_approved_on_first_pass_completes_without_rewrite():
    async def scenario():
        service = FakeService(scores=[5])
        controller = ResearchController(service, max_retries=2)
        snapshot = await controller.research("quantum networking")
        return service, snapshot

    service, snapshot = asyncio.run(scenario())

    assert snapshot.phase == Phase.COMPLETED
    assert snapshot.outcome == CompletionOutcome.APPROVED
    assert snapshot.running is False
    assert snapshot.retry_count == 0
    assert snapshot.report is not None
    assert snapshot.report.version == 1
    assert snapshot.report.score == 5
    assert len(snapshot.queries) == 5
    assert snapshot.logs[0].message == 'Starting research on: "quantum networking"'
    assert [step for step, _ in service.calls] == ["brainstorm", "refine", "search_and_compile", "review"]


def test_low_score_triggers_one_rewrite_then_completes():
    recorder = _Recorder()

    async def scenario():
        service = FakeService(scores=[3, 4])
        controller = ResearchController(service, max_retries=2)
        controller.add_observer(recorder)
        snapshot = await controller.research("solid-state batteries")
        return service, snapshot

    service, snapshot = asyncio.run(scenario())

    assert snapshot.phase == Phase.COMPLETED
    assert snapshot.outcome == CompletionOutcome.APPROVED
    assert snapshot.retry_count == 1
    assert snapshot.report.version == 2
    assert snapshot.report.score == 4
    assert recorder.phases.count(Phase.REWRITING) == 1
    assert recorder.phases[-1] == Phase.COMPLETED

    first, second = service.compile_calls
    assert first["feedback"] is None and first["previous_report"] is None
    assert second["feedback"] == "score 3: add more depth"
    assert second["previous_report"] == "# solid-state batteries\n\ndraft 1"
    assert len(second["queries"]) == 5


def test_exhausted_retries_complete_as_best_effort():
    async def scenario():
        service = FakeService(scores=[2, 2, 3])
        controller = ResearchController(service, max_retries=2)
        snapshot = await controller.research("fusion startups")
        return service, snapshot

    service, snapshot = asyncio.run(scenario())

    assert snapshot.phase == Phase.COMPLETED
    assert snapshot.outcome == CompletionOutcome.BEST_EFFORT
    assert snapshot.retry_count == snapshot.max_retries == 2
    assert snapshot.report.version == 3
    assert snapshot.report.score == 3
    assert len(service.compile_calls) == 3
    assert "Max retries reached. Finalizing report despite low score." in [e.message for e in snapshot.logs]
    assert not [e for e in snapshot.logs if e.phase == Phase.ERROR]


def test_zero_retry_budget_never_rewrites():
    async def scenario():
        controller = ResearchController(FakeService(scores=[1]), max_retries=0)
        return await controller.research("topic")

    snapshot = asyncio.run(scenario())

    assert snapshot.phase == Phase.COMPLETED
    assert snapshot.outcome == CompletionOutcome.BEST_EFFORT
    assert snapshot.report.version == 1


def test_brainstorm_failure_goes_straight_to_error():
    async def scenario():
        service = FakeService(failures={"brainstorm": ServiceFailure("No response from model")})
        controller = ResearchController(service, max_retries=2)
        await controller.research("topic")
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.ERROR
    assert controller.report is None
    errors = _errors(controller)
    assert len(errors) == 1
    assert "No response from model" in errors[0].details


def test_empty_brainstorm_result_is_a_service_failure():
    async def scenario():
        controller = ResearchController(FakeService(brainstorm_count=0), max_retries=2)
        await controller.research("topic")
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.ERROR
    assert len(_errors(controller)) == 1


def test_review_failure_keeps_last_committed_report():
    async def scenario():
        service = FakeService(failures={"review": ServiceFailure("review parse error")})
        controller = ResearchController(service, max_retries=2)
        await controller.research("topic")
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.ERROR
    assert controller.report is not None
    assert controller.report.version == 1
    assert controller.report.score is None


def test_unexpected_exception_is_reported_as_error():
    async def scenario():
        controller = ResearchController(FakeService(failures={"refine": KeyError("queries")}), max_retries=2)
        await controller.research("topic")
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.ERROR
    assert len(_errors(controller)) == 1


def test_compiled_sources_are_deduplicated_in_order():
    sources = [
        Source(title="A", uri="https://a"),
        Source(title="B", uri="https://b"),
        Source(title="A again", uri="https://a"),
        Source(title="C", uri="https://c"),
    ]

    async def scenario():
        controller = ResearchController(FakeService(sources=sources), max_retries=2)
        return await controller.research("topic")

    snapshot = asyncio.run(scenario())

    assert [s.uri for s in snapshot.report.sources] == ["https://a", "https://b", "https://c"]
    assert snapshot.report.sources[0].title == "A"


def test_stop_mid_search_goes_idle_without_error():
    async def scenario():
        gate = asyncio.Event()
        service = FakeService(gates={"search_and_compile": gate})
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        await service.wait_for("search_and_compile")
        assert controller.phase == Phase.SEARCHING
        controller.stop()
        await task
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.IDLE
    assert controller.report is None
    assert _errors(controller) == []
    assert _messages(controller)[-1] == "Research stopped by user."


def test_stop_mid_review_discards_the_runs_report():
    async def scenario():
        gate = asyncio.Event()
        service = FakeService(gates={"review": gate})
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        await service.wait_for("review")
        assert controller.report is not None
        controller.stop()
        await task
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.IDLE
    assert controller.report is None
    assert _errors(controller) == []


def test_stop_without_active_run_is_a_noop():
    async def scenario():
        controller = ResearchController(FakeService(), max_retries=2)
        controller.stop()
        assert controller.phase == Phase.IDLE
        await controller.research("topic")
        controller.stop()
        controller.stop()
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.COMPLETED
    assert _messages(controller)[-1] == "Report approved! Research complete."


def test_second_start_ignores_late_response_from_first_run():
    async def scenario():
        gate_a = asyncio.Event()
        service = FakeService(gates={("search_and_compile", "topic a"): gate_a}, honor_token=False)
        controller = ResearchController(service, max_retries=2)

        task_a = controller.start("topic a")
        await service.wait_for("search_and_compile")
        task_b = controller.start("topic b")
        await task_b
        after_b = controller.snapshot()

        gate_a.set()
        await task_a
        return after_b, controller.snapshot()

    after_b, final = asyncio.run(scenario())

    assert final == after_b
    assert final.topic == "topic b"
    assert final.phase == Phase.COMPLETED
    assert final.report.markdown.startswith("# topic b")
    assert all("stopped by user" not in entry.message for entry in final.logs)
    assert final.logs[0].message == 'Starting research on: "topic b"'


def test_second_start_cancels_the_pending_call_of_the_first_run():
    async def scenario():
        gate_a = asyncio.Event()
        service = FakeService(gates={("search_and_compile", "topic a"): gate_a})
        controller = ResearchController(service, max_retries=2)

        task_a = controller.start("topic a")
        await service.wait_for("search_and_compile")
        task_b = controller.start("topic b")
        await asyncio.wait_for(task_a, 1.0)
        await task_b
        return service, controller.snapshot()

    service, snapshot = asyncio.run(scenario())

    assert snapshot.topic == "topic b"
    assert snapshot.phase == Phase.COMPLETED
    assert [c["topic"] for c in service.compile_calls] == ["topic b"]


def test_start_rejects_blank_topic():
    async def scenario():
        controller = ResearchController(FakeService(), max_retries=2)
        with pytest.raises(ValueError):
            controller.start("   ")
        return controller

    controller = asyncio.run(scenario())
    assert controller.phase == Phase.IDLE
    assert controller.logs() == []


def test_follow_up_appends_answer_and_merges_sources():
    async def scenario():
        service = FakeService(
            sources=[Source(title="A", uri="https://a")],
            follow_up_sources=[Source(title="A dup", uri="https://a"), Source(title="B", uri="https://b")],
        )
        controller = ResearchController(service, max_retries=2)
        before = await controller.research("topic")
        after = await controller.ask("What about costs?")
        return before, after

    before, after = asyncio.run(scenario())

    assert after.phase == Phase.COMPLETED
    assert len(after.report.sources) == len(before.report.sources) + 1
    assert [s.uri for s in after.report.sources] == ["https://a", "https://b"]
    assert after.report.sources[0].title == "A"
    assert after.report.version == before.report.version
    assert after.report.score == before.report.score
    assert after.report.feedback == before.report.feedback
    assert after.report.markdown == (
        before.report.markdown + "\n\n---\n\n### Follow-up: What about costs?\n\nAnswer to What about costs?"
    )
    last = after.logs[-1]
    assert last.message == "Follow-up answer added to report."
    assert last.details == {"new_sources_found": 1}


def test_follow_up_requires_a_report():
    async def scenario():
        controller = ResearchController(FakeService(), max_retries=2)
        with pytest.raises(WorkflowStateError):
            controller.follow_up("anything?")

    asyncio.run(scenario())


def test_follow_up_rejected_while_pipeline_runs():
    async def scenario():
        gate = asyncio.Event()
        service = FakeService(scores=[2, 5], gates={"review": gate})
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        await service.wait_for("review")
        with pytest.raises(WorkflowStateError):
            controller.follow_up("too early?")
        gate.set()
        await task
        return controller

    controller = asyncio.run(scenario())
    assert controller.phase == Phase.COMPLETED


def test_follow_up_failure_keeps_report_and_returns_to_completed():
    async def scenario():
        service = FakeService(failures={"follow_up": ServiceFailure("transport error")})
        controller = ResearchController(service, max_retries=2)
        before = await controller.research("topic")
        after = await controller.ask("why?")
        return before, after

    before, after = asyncio.run(scenario())

    assert after.phase == Phase.COMPLETED
    assert after.report == before.report
    errors = [e for e in after.logs if e.phase == Phase.ERROR]
    assert len(errors) == 1
    assert "transport error" in errors[0].details


def test_stopping_a_follow_up_keeps_report_visible():
    async def scenario():
        gate = asyncio.Event()
        service = FakeService(gates={"follow_up": gate})
        controller = ResearchController(service, max_retries=2)
        before = await controller.research("topic")
        task = controller.follow_up("why?")
        await service.wait_for("follow_up")
        assert controller.phase == Phase.SEARCHING
        controller.stop()
        await task
        return before, controller.snapshot()

    before, after = asyncio.run(scenario())

    assert after.phase == Phase.COMPLETED
    assert after.report == before.report
    assert after.logs[-1].message == "Follow-up stopped by user."
    assert not [e for e in after.logs if e.phase == Phase.ERROR]


def test_failing_observer_does_not_break_the_pipeline():
    class _Broken(ResearchObserver):
        def on_log(self, entry: LogEntry) -> None:
            raise RuntimeError("display crashed")

    async def scenario():
        controller = ResearchController(FakeService(), max_retries=2)
        controller.add_observer(_Broken())
        return await controller.research("topic")

    snapshot = asyncio.run(scenario())
    assert snapshot.phase == Phase.COMPLETED


def test_snapshot_is_detached_from_controller_state():
    async def scenario():
        controller = ResearchController(FakeService(sources=[Source(title="A", uri="https://a")]), max_retries=2)
        await controller.research("topic")
        return controller

    controller = asyncio.run(scenario())
    snapshot = controller.snapshot()
    snapshot.logs.clear()
    snapshot.report.sources.clear()

    assert controller.logs()
    assert controller.report.sources


def test_removed_observer_stops_receiving_events():
    recorder = _Recorder()

    async def scenario():
        controller = ResearchController(FakeService(), max_retries=2)
        controller.add_observer(recorder)
        await controller.research("first")
        seen = len(recorder.entries)
        controller.remove_observer(recorder)
        await controller.research("second")
        return seen

    seen = asyncio.run(scenario())
    assert seen > 0
    assert len(recorder.entries) == seen


def test_follow_up_rejected_after_failed_run():
    async def scenario():
        service = FakeService(failures={"review": ServiceFailure("review parse error")})
        controller = ResearchController(service, max_retries=2)
        await controller.research("topic")
        assert controller.report is not None
        with pytest.raises(WorkflowStateError):
            controller.follow_up("why?")
        return service, controller

    service, controller = asyncio.run(scenario())

    assert controller.phase == Phase.ERROR
    assert controller.outcome is None
    assert "follow_up" not in [step for step, _ in service.calls]


class _StopOnPhase(ResearchObserver):
    def __init__(self, controller: ResearchController, phase: Phase) -> None:
        self.controller = controller
        self.phase = phase

    def on_phase(self, phase: Phase) -> None:
        if phase == self.phase:
            self.controller.stop()


@pytest.mark.parametrize(
    "phase",
    [
        Phase.BRAINSTORMING,
        Phase.REFLECTING,
        Phase.SEARCHING,
        Phase.COMPILING,
        Phase.REVIEWING,
        Phase.REWRITING,
    ],
)
def test_stop_in_any_running_phase_goes_idle(phase):
    async def scenario():
        service = FakeService(scores=[2, 5])
        controller = ResearchController(service, max_retries=2)
        controller.add_observer(_StopOnPhase(controller, phase))
        await controller.research("topic")
        return service, controller

    service, controller = asyncio.run(scenario())

    assert controller.phase == Phase.IDLE
    assert controller.report is None
    assert controller.outcome is None
    assert _errors(controller) == []
    assert _messages(controller)[-1] == "Research stopped by user."
    assert len(service.compile_calls) <= 1


def test_stop_before_scheduled_run_starts():
    async def scenario():
        service = FakeService()
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        controller.stop()
        await task
        return service, controller

    service, controller = asyncio.run(scenario())

    assert service.calls == []
    assert controller.phase == Phase.IDLE
    assert _messages(controller) == ['Starting research on: "topic"', "Research stopped by user."]


def test_cancelling_the_run_task_settles_in_idle():
    async def scenario():
        service = FakeService(gates={"search_and_compile": asyncio.Event()})
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        await service.wait_for("search_and_compile")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return controller

    controller = asyncio.run(scenario())

    assert controller.phase == Phase.IDLE
    assert controller.is_running is False
    assert _errors(controller) == []
    assert _messages(controller)[-1] == "Research stopped by user."


def test_cancelling_the_run_task_before_its_first_step_settles_in_idle():
    async def scenario():
        service = FakeService()
        controller = ResearchController(service, max_retries=2)
        task = controller.start("topic")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        return service, controller

    service, controller = asyncio.run(scenario())

    assert service.calls == []
    assert controller.phase == Phase.IDLE
    assert _messages(controller)[-1] == "Research stopped by user."

    # the controller accepts a new run afterwards
    async def rerun():
        return await controller.research("again")

    assert asyncio.run(rerun()).phase == Phase.COMPLETED


def test_cancelling_a_follow_up_task_returns_to_completed():
    async def scenario():
        service = FakeService(gates={"follow_up": asyncio.Event()})
        controller = ResearchController(service, max_retries=2)
        before = await controller.research("topic")
        task = controller.follow_up("why?")
        await service.wait_for("follow_up")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return before, controller.snapshot()

    before, after = asyncio.run(scenario())

    assert after.phase == Phase.COMPLETED
    assert after.report == before.report
    assert after.logs[-1].message == "Follow-up stopped by user."
