"""Tests for the debounced, generation-fenced analysis scheduler."""

from __future__ import annotations

import asyncio

from quillcheck.analysis.models import DetectionOptions, DetectionResult
from quillcheck.analysis.scheduler import (
    AnalysisOutcome,
    AnalysisScheduler,
    CallableDetector,
    SchedulerConfig,
    SchedulerState,
)
from quillcheck.services import telemetry

from tests.helpers import ControlledDetector, FailingDetector, StaticDetector, make_issue, result_of, wait_for

FIRST = "The first version of the text."
SECOND = "The second version of the text."


def _scheduler(detector, **kwargs) -> tuple[AnalysisScheduler, list[AnalysisOutcome]]:
    config = kwargs.pop("config", SchedulerConfig(debounce_seconds=0.01, min_length=10))
    scheduler = AnalysisScheduler(detector, config=config, **kwargs)
    outcomes: list[AnalysisOutcome] = []
    scheduler.add_listener(outcomes.append)
    return scheduler, outcomes


class TestSkipping:
    def test_short_text_is_skipped_without_detection(self) -> None:
        detector = StaticDetector()
        scheduler, outcomes = _scheduler(detector)

        generation = scheduler.schedule("too short")

        assert generation == 1
        assert detector.calls == []
        assert outcomes[-1].skipped
        assert scheduler.latest is outcomes[-1]
        assert scheduler.state is SchedulerState.IDLE

    def test_whitespace_does_not_count_towards_min_length(self) -> None:
        detector = StaticDetector()
        scheduler, outcomes = _scheduler(detector)
        scheduler.schedule("   short   ")
        assert outcomes[-1].skipped

    def test_disabled_scheduler_skips(self) -> None:
        detector = StaticDetector()
        scheduler, outcomes = _scheduler(detector, enabled=False)
        scheduler.schedule(FIRST)
        assert outcomes[-1].skipped
        assert detector.calls == []

    def test_all_categories_disabled_skips(self) -> None:
        options = DetectionOptions(enable_grammar=False, enable_spelling=False, enable_style=False)
        scheduler, outcomes = _scheduler(StaticDetector(), options=options)
        scheduler.schedule(FIRST)
        assert outcomes[-1].skipped


class TestDebounce:
    def test_burst_of_edits_runs_detection_once(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, outcomes = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0.05))
            scheduler.schedule("The first draft.")
            scheduler.schedule("The first draft!")
            scheduler.schedule(SECOND)
            assert scheduler.state is SchedulerState.PENDING
            assert scheduler.has_pending_timer
            await scheduler.drain()
            assert detector.calls == [SECOND]
            assert [outcome.generation for outcome in outcomes] == [3]
            assert scheduler.state is SchedulerState.IDLE

        asyncio.run(run())

    def test_duplicate_requests_are_suppressed(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, _ = _scheduler(detector)
            assert scheduler.schedule(FIRST) == 1
            assert scheduler.schedule(FIRST) is None
            await scheduler.drain()
            assert scheduler.schedule(FIRST) is None
            assert detector.calls == [FIRST]

        asyncio.run(run())

    def test_changed_options_allow_the_same_text_again(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, _ = _scheduler(detector)
            scheduler.schedule(FIRST)
            await scheduler.drain()
            scheduler.update_options(DetectionOptions(enable_style=False))
            assert scheduler.schedule(FIRST) == 2
            await scheduler.drain()
            assert detector.calls == [FIRST, FIRST]

        asyncio.run(run())


class TestGenerations:
    def test_out_of_order_results_keep_newest_generation(self) -> None:
        async def run() -> None:
            detector = ControlledDetector()
            scheduler, outcomes = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0))
            stale = result_of([make_issue(FIRST, "first")])
            fresh = result_of([make_issue(SECOND, "second")])

            scheduler.schedule(FIRST)
            await wait_for(lambda: len(detector.calls) == 1)
            latest = scheduler.schedule(SECOND)
            await wait_for(lambda: len(detector.calls) == 2)

            detector.resolve(1, fresh)
            await wait_for(lambda: bool(outcomes))
            detector.resolve(0, stale)
            await scheduler.drain()

            assert latest == 2
            assert [outcome.generation for outcome in outcomes] == [2]
            assert scheduler.latest is not None
            assert scheduler.latest.result is fresh
            assert not detector.calls[0][1].cancelled()

        asyncio.run(run())

    def test_older_result_arriving_first_is_discarded(self) -> None:
        async def run() -> None:
            detector = ControlledDetector()
            scheduler, outcomes = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0))
            scheduler.schedule(FIRST)
            await wait_for(lambda: len(detector.calls) == 1)
            scheduler.schedule(SECOND)
            await wait_for(lambda: len(detector.calls) == 2)

            detector.resolve(0, result_of([make_issue(FIRST, "first")]))
            await asyncio.sleep(0.01)
            assert outcomes == []
            assert scheduler.latest is None

            detector.resolve(1)
            await scheduler.drain()
            assert [outcome.text for outcome in outcomes] == [SECOND]

        asyncio.run(run())

    def test_generations_increase_monotonically(self) -> None:
        async def run() -> None:
            scheduler, _ = _scheduler(StaticDetector())
            generations = [scheduler.schedule(f"Revision number {index} here.") for index in range(5)]
            await scheduler.drain()
            assert generations == sorted(generations)
            assert len(set(generations)) == 5
            assert scheduler.generation == generations[-1]

        asyncio.run(run())

    def test_reset_invalidates_in_flight_work(self) -> None:
        async def run() -> None:
            detector = ControlledDetector()
            scheduler, outcomes = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0))
            scheduler.schedule(FIRST)
            await wait_for(lambda: len(detector.calls) == 1)
            scheduler.reset()
            detector.resolve(0)
            await scheduler.drain()
            assert outcomes == []
            assert scheduler.latest is None
            assert scheduler.state is SchedulerState.IDLE

        asyncio.run(run())


class TestManualAnalyze:
    def test_manual_analyze_cancels_timer_and_runs_immediately(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, _ = _scheduler(detector, config=SchedulerConfig(debounce_seconds=10))
            scheduler.schedule(FIRST)
            outcome = await scheduler.manual_analyze(FIRST)
            assert outcome is not None
            assert outcome.generation == 2
            assert not scheduler.has_pending_timer
            assert detector.calls == [FIRST]

        asyncio.run(run())

    def test_manual_analyze_bypasses_duplicate_suppression(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, _ = _scheduler(detector)
            await scheduler.manual_analyze(FIRST)
            await scheduler.manual_analyze(FIRST)
            assert detector.calls == [FIRST, FIRST]

        asyncio.run(run())

    def test_manual_analyze_of_short_text_is_skipped(self) -> None:
        async def run() -> None:
            scheduler, _ = _scheduler(StaticDetector())
            outcome = await scheduler.manual_analyze("tiny")
            assert outcome is not None and outcome.skipped

        asyncio.run(run())

    def test_callable_detector_adapter(self) -> None:
        async def detect(text: str, options: DetectionOptions) -> DetectionResult:
            return result_of([make_issue(text, "first")])

        async def run() -> AnalysisOutcome | None:
            scheduler, _ = _scheduler(CallableDetector(detect))
            return await scheduler.manual_analyze(FIRST)

        outcome = asyncio.run(run())
        assert outcome is not None
        assert [issue.id for issue in outcome.result.issues] == ["first-4"]


class TestFailures:
    def test_failure_is_reported_and_same_text_can_retry(self) -> None:
        async def run() -> None:
            detector = FailingDetector(RuntimeError("service unavailable"))
            scheduler, outcomes = _scheduler(detector)
            scheduler.schedule(FIRST)
            await scheduler.drain()
            assert outcomes[-1].failed
            assert outcomes[-1].error == "service unavailable"
            assert scheduler.state is SchedulerState.IDLE
            assert scheduler.schedule(FIRST) == 2
            await scheduler.drain()
            assert detector.calls == [FIRST, FIRST]

        asyncio.run(run())

    def test_stale_failure_is_ignored(self) -> None:
        async def run() -> None:
            detector = ControlledDetector()
            scheduler, outcomes = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0))
            scheduler.schedule(FIRST)
            await wait_for(lambda: len(detector.calls) == 1)
            scheduler.schedule(SECOND)
            await wait_for(lambda: len(detector.calls) == 2)
            detector.fail(0, RuntimeError("late failure"))
            detector.resolve(1)
            await scheduler.drain()
            assert len(outcomes) == 1
            assert not outcomes[0].failed

        asyncio.run(run())

    def test_error_without_message_uses_exception_name(self) -> None:
        async def run() -> AnalysisOutcome | None:
            scheduler, _ = _scheduler(FailingDetector(TimeoutError()))
            return await scheduler.manual_analyze(FIRST)

        outcome = asyncio.run(run())
        assert outcome is not None
        assert outcome.error == "TimeoutError"


class TestLifecycle:
    def test_state_listener_sees_pending_analyzing_idle(self) -> None:
        async def run() -> list[SchedulerState]:
            scheduler, _ = _scheduler(StaticDetector())
            states: list[SchedulerState] = []
            scheduler.add_state_listener(lambda state, _generation: states.append(state))
            scheduler.schedule(FIRST)
            await scheduler.drain()
            return states

        assert asyncio.run(run()) == [SchedulerState.PENDING, SchedulerState.ANALYZING, SchedulerState.IDLE]

    def test_state_listener_receives_the_running_generation(self) -> None:
        async def run() -> list[tuple[SchedulerState, int]]:
            scheduler, _ = _scheduler(StaticDetector())
            transitions: list[tuple[SchedulerState, int]] = []
            scheduler.add_state_listener(lambda state, generation: transitions.append((state, generation)))
            manual = asyncio.create_task(scheduler.manual_analyze(FIRST))
            await asyncio.sleep(0)
            scheduler.schedule(SECOND)
            await scheduler.drain()
            assert await manual is None
            return transitions

        transitions = asyncio.run(run())

        assert transitions[0] == (SchedulerState.PENDING, 2)
        assert (SchedulerState.ANALYZING, 1) in transitions
        assert transitions[-2:] == [(SchedulerState.ANALYZING, 2), (SchedulerState.IDLE, 2)]

    def test_disabling_clears_latest_outcome(self) -> None:
        async def run() -> None:
            scheduler, _ = _scheduler(StaticDetector())
            await scheduler.manual_analyze(FIRST)
            assert scheduler.latest is not None
            scheduler.set_enabled(False)
            assert scheduler.latest is None
            assert not scheduler.enabled

        asyncio.run(run())

    def test_closed_scheduler_ignores_requests(self) -> None:
        async def run() -> None:
            detector = StaticDetector()
            scheduler, _ = _scheduler(detector)
            await scheduler.aclose()
            assert scheduler.schedule(FIRST) is None
            assert await scheduler.manual_analyze(FIRST) is None
            assert detector.calls == []

        asyncio.run(run())

    def test_telemetry_records_schedule_and_completion(self, telemetry_sink) -> None:
        async def run() -> None:
            scheduler, _ = _scheduler(StaticDetector())
            scheduler.schedule(FIRST)
            await scheduler.drain()

        asyncio.run(run())
        scheduled = telemetry_sink.events(telemetry.ANALYSIS_SCHEDULED)
        completed = telemetry_sink.events(telemetry.ANALYSIS_COMPLETED)
        assert scheduled[-1].payload["manual"] is False
        assert completed[-1].payload["issues"] == 0

    def test_telemetry_records_stale_results(self, telemetry_sink) -> None:
        async def run() -> None:
            detector = ControlledDetector()
            scheduler, _ = _scheduler(detector, config=SchedulerConfig(debounce_seconds=0))
            scheduler.schedule(FIRST)
            await wait_for(lambda: len(detector.calls) == 1)
            scheduler.schedule(SECOND)
            await wait_for(lambda: len(detector.calls) == 2)
            detector.resolve(0)
            detector.resolve(1)
            await scheduler.drain()

        asyncio.run(run())
        stale = telemetry_sink.events(telemetry.ANALYSIS_STALE)
        assert stale and stale[-1].payload["generation"] == 1
