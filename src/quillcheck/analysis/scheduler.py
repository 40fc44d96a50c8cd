"""Debounced, generation-fenced scheduling of issue detection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from ..detectors.base import IssueDetector
from ..services.telemetry import (
    ANALYSIS_COMPLETED,
    ANALYSIS_FAILED,
    ANALYSIS_SCHEDULED,
    ANALYSIS_STALE,
    emit,
)
from .models import DetectionOptions, DetectionResult, SummaryStats

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0
DEFAULT_MIN_LENGTH = 10


class SchedulerState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ANALYZING = "analyzing"


@dataclass(slots=True)
class SchedulerConfig:
    """Tunable parameters for the analysis scheduler."""

    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    min_length: int = DEFAULT_MIN_LENGTH


@dataclass(slots=True, frozen=True)
class AnalysisOutcome:
    """The single accepted result slot exposed by :class:`AnalysisScheduler`."""

    generation: int
    text: str
    result: DetectionResult = field(default_factory=DetectionResult)
    error: str | None = None
    skipped: bool = False
    completed_at: float = field(default_factory=time.time)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def summary(self) -> SummaryStats | None:
        if self.failed or self.skipped:
            return None
        return self.result.summary


OutcomeListener = Callable[[AnalysisOutcome], None]
StateListener = Callable[[SchedulerState, int], None]


class AnalysisScheduler:
    """Debounces analysis requests and accepts only the newest generation's result.

    Every accepted :meth:`schedule` call (and every :meth:`manual_analyze` call)
    allocates a new generation. A detector call that resolves after a newer
    generation was issued is ignored; in-flight calls are never aborted.
    """

    def __init__(
        self,
        detector: IssueDetector,
        *,
        config: SchedulerConfig | None = None,
        options: DetectionOptions | None = None,
        enabled: bool = True,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if detector is None:
            raise ValueError("detector is required")
        self._detector = detector
        self._config = config or SchedulerConfig()
        self._options = options or DetectionOptions()
        self._enabled = bool(enabled)
        self._loop = loop
        self._state = SchedulerState.IDLE
        self._state_generation = 0
        self._generation = 0
        self._last_requested_text: str | None = None
        self._latest: AnalysisOutcome | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task[AnalysisOutcome | None]] = set()
        self._listeners: list[OutcomeListener] = []
        self._state_listeners: list[StateListener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def latest(self) -> AnalysisOutcome | None:
        return self._latest

    @property
    def options(self) -> DetectionOptions:
        return self._options

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, callback: OutcomeListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: OutcomeListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(callback)

    def add_state_listener(self, callback: StateListener) -> None:
        """Call ``callback(state, generation)`` on every state change.

        ``generation`` is the request the transition belongs to, which can be
        older than :attr:`generation` when a newer request is already pending.
        """

        if callback not in self._state_listeners:
            self._state_listeners.append(callback)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable analysis; disabling clears the accepted result."""

        enabled = bool(enabled)
        if enabled == self._enabled:
            return
        self._enabled = enabled
        self._last_requested_text = None
        if not enabled:
            self.reset()

    def update_options(self, options: DetectionOptions) -> None:
        if options == self._options:
            return
        self._options = options
        # A different rule set must be allowed to re-run on the same text.
        self._last_requested_text = None

    def reset(self) -> None:
        """Invalidate every outstanding request and empty the result slot."""

        self._cancel_timer()
        self._generation += 1
        self._last_requested_text = None
        self._latest = None
        self._set_state(SchedulerState.IDLE)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, text: str) -> int | None:
        """Request a debounced analysis of ``text``.

        Returns the allocated generation, or ``None`` when the call was a
        duplicate of the latest request.
        """

        if self._closed:
            return None
        text = text or ""
        if text == self._last_requested_text:
            LOGGER.debug("Skipping duplicate analysis request (%s chars)", len(text))
            return None
        self._cancel_timer()
        generation = self._next_generation(text)
        if not self._should_detect(text):
            self._accept_skipped(generation, text)
            return generation
        loop = self._get_loop()
        self._timer = loop.call_later(
            max(0.0, self._config.debounce_seconds),
            self._fire,
            generation,
            text,
        )
        self._set_state(SchedulerState.PENDING, generation)
        emit(ANALYSIS_SCHEDULED, {"generation": generation, "chars": len(text), "manual": False})
        return generation

    async def manual_analyze(self, text: str) -> AnalysisOutcome | None:
        """Run detection immediately, bypassing the debounce timer.

        Duplicate suppression does not apply; a manual request always re-runs.
        Returns the accepted outcome, or ``None`` when a newer request won.
        """

        if self._closed:
            return None
        text = text or ""
        self._cancel_timer()
        generation = self._next_generation(text)
        if not self._should_detect(text):
            return self._accept_skipped(generation, text)
        emit(ANALYSIS_SCHEDULED, {"generation": generation, "chars": len(text), "manual": True})
        task = self._spawn(generation, text)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait until no timer is pending and no detector call is in flight."""

        loop = self._get_loop()
        while self._timer is not None or self._inflight:
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
                continue
            timer = self._timer
            if timer is None:
                continue
            await asyncio.sleep(max(0.0, timer.when() - loop.time()) + 0.001)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()
        self._generation += 1
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        self._set_state(SchedulerState.IDLE)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _next_generation(self, text: str) -> int:
        self._generation += 1
        self._last_requested_text = text
        return self._generation

    def _should_detect(self, text: str) -> bool:
        if not self._enabled or not self._options.any_enabled:
            return False
        return len(text.strip()) >= self._config.min_length

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _accept_skipped(self, generation: int, text: str) -> AnalysisOutcome:
        outcome = AnalysisOutcome(generation=generation, text=text, skipped=True)
        self._latest = outcome
        self._set_state(SchedulerState.IDLE, generation)
        self._notify(outcome)
        return outcome

    def _fire(self, generation: int, text: str) -> None:
        self._timer = None
        if generation != self._generation or self._closed:
            return
        self._spawn(generation, text)

    def _spawn(self, generation: int, text: str) -> asyncio.Task[AnalysisOutcome | None]:
        task = self._get_loop().create_task(self._run(generation, text))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run(self, generation: int, text: str) -> AnalysisOutcome | None:
        self._set_state(SchedulerState.ANALYZING, generation)
        started = time.perf_counter()
        try:
            result = await self._detector.detect(text, self._options)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                self._discard_stale(generation)
                return None
            message = str(exc) or exc.__class__.__name__
            LOGGER.warning("Issue detection failed (generation %s): %s", generation, message)
            LOGGER.debug("Detector failure details", exc_info=True)
            # Forget the text so the same content can be retried.
            self._last_requested_text = None
            outcome = AnalysisOutcome(generation=generation, text=text, error=message)
            self._latest = outcome
            self._set_state(SchedulerState.IDLE, generation)
            emit(ANALYSIS_FAILED, {"generation": generation, "error": message})
            self._notify(outcome)
            return outcome
        if generation != self._generation:
            self._discard_stale(generation)
            return None
        latency_ms = (time.perf_counter() - started) * 1000.0
        outcome = AnalysisOutcome(generation=generation, text=text, result=result)
        self._latest = outcome
        self._set_state(SchedulerState.IDLE, generation)
        emit(
            ANALYSIS_COMPLETED,
            {"generation": generation, "issues": len(result.issues), "latency_ms": round(latency_ms, 3)},
        )
        self._notify(outcome)
        return outcome

    def _discard_stale(self, generation: int) -> None:
        LOGGER.debug("Discarding stale analysis result %s (current %s)", generation, self._generation)
        emit(ANALYSIS_STALE, {"generation": generation, "current": self._generation})

    def _set_state(self, state: SchedulerState, generation: int | None = None) -> None:
        if generation is None:
            generation = self._generation
        if state is self._state and generation == self._state_generation:
            return
        self._state = state
        self._state_generation = generation
        for callback in list(self._state_listeners):
            try:
                callback(state, generation)
            except Exception:  # pragma: no cover - listeners must not break the scheduler
                LOGGER.exception("Scheduler state listener %s failed", callback)

    def _notify(self, outcome: AnalysisOutcome) -> None:
        for callback in list(self._listeners):
            try:
                callback(outcome)
            except Exception:  # pragma: no cover - listeners must not break the scheduler
                LOGGER.exception("Analysis listener %s failed", callback)


DetectCallable = Callable[[str, DetectionOptions], Awaitable[DetectionResult]]


class CallableDetector:
    """Adapts a bare coroutine function to the :class:`IssueDetector` protocol."""

    def __init__(self, func: DetectCallable) -> None:
        self._func = func

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        return await self._func(text, options)


__all__ = [
    "AnalysisOutcome",
    "AnalysisScheduler",
    "CallableDetector",
    "IssueDetector",
    "SchedulerConfig",
    "SchedulerState",
]
