"""Proofreading session: the edit → analyse → filter → paint → correct loop.

A :class:`ProofreadingSession` owns one scheduler, one fingerprint tracker, one
renderer and one applier for a single editing surface. Content changes from
the surface are projected to plain text and scheduled for analysis; accepted
results are filtered against dismissed fingerprints, published on the event
bus and painted. Programmatic mutations (corrections, document loads, mark
painting) run inside :meth:`ProofreadingSession.programmatic` so they are never
mistaken for user edits.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Sequence

from .analysis.fingerprints import IssueFingerprintTracker
from .analysis.models import CorrectionChange, Issue, IssueType, Severity, SummaryStats
from .analysis.projector import PlainTextProjector
from .analysis.scheduler import AnalysisOutcome, AnalysisScheduler, SchedulerConfig, SchedulerState
from .corrections.applier import ApplyOutcome, BatchOutcome, CorrectionApplier
from .detectors.base import IssueDetector
from .editor.document_model import DocumentStore, RichDocument
from .editor.surface import EditingSurface
from .events import (
    AnalysisFailed,
    AnalysisStarted,
    AnnotationsRendered,
    CorrectionsApplied,
    EventBus,
    IssueDismissed,
    IssuesUpdated,
)
from .rendering.annotations import AnnotationRenderer, RenderReport
from .services.settings import Settings
from .services.telemetry import CORRECTIONS_APPLIED, emit

LOGGER = logging.getLogger(__name__)

IssuesStatus = Literal["idle", "analyzing", "clean", "issues", "failed"]


@dataclass(slots=True)
class _SessionState:
    issues: tuple[Issue, ...] = ()
    statistics: SummaryStats | None = None
    error: str | None = None
    last_analyzed: str | None = None
    generation: int = 0
    requested_chars: int = 0
    programmatic_depth: int = 0


class ProofreadingSession:
    """Wires an editing surface to issue detection, annotation and correction."""

    def __init__(
        self,
        surface: EditingSurface,
        detector: IssueDetector,
        settings: Settings | None = None,
        *,
        bus: EventBus | None = None,
        document: RichDocument | None = None,
        store: DocumentStore | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._surface = surface
        self._detector = detector
        self._bus = bus or EventBus()
        self._document = document
        self._store = store
        self._projector = PlainTextProjector()
        self._scheduler = AnalysisScheduler(
            detector,
            config=SchedulerConfig(
                debounce_seconds=self._settings.debounce_seconds,
                min_length=self._settings.min_length,
            ),
            options=self._settings.detection_options(),
            enabled=self._settings.analysis_enabled,
            loop=loop,
        )
        self._tracker = IssueFingerprintTracker(
            radius=self._settings.context_radius,
            length_ratio=self._settings.significant_length_ratio,
            diff_ratio=self._settings.significant_diff_ratio,
        )
        self._renderer = AnnotationRenderer(surface, prefix_chars=self._settings.prefix_anchor_chars)
        self._applier = CorrectionApplier()
        self._state = _SessionState()
        self._scheduler.add_listener(self._handle_outcome)
        self._scheduler.add_state_listener(self._handle_scheduler_state)
        self._surface.add_change_listener(self._handle_surface_changed)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def surface(self) -> EditingSurface:
        return self._surface

    @property
    def scheduler(self) -> AnalysisScheduler:
        return self._scheduler

    @property
    def tracker(self) -> IssueFingerprintTracker:
        return self._tracker

    @property
    def renderer(self) -> AnnotationRenderer:
        return self._renderer

    @property
    def document(self) -> RichDocument | None:
        return self._document

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def can_save(self) -> bool:
        return self._document is not None and self._store is not None

    @property
    def issues(self) -> tuple[Issue, ...]:
        return self._state.issues

    @property
    def statistics(self) -> SummaryStats | None:
        return self._state.statistics

    @property
    def error(self) -> str | None:
        return self._state.error

    @property
    def is_analyzing(self) -> bool:
        return self._scheduler.state is not SchedulerState.IDLE

    @property
    def last_analyzed(self) -> str | None:
        return self._state.last_analyzed

    @property
    def enabled(self) -> bool:
        return self._scheduler.enabled

    @property
    def status(self) -> IssuesStatus:
        if self._state.error is not None:
            return "failed"
        if self.is_analyzing:
            return "analyzing"
        if self._state.last_analyzed is None:
            return "idle"
        return "issues" if self._state.issues else "clean"

    @property
    def is_programmatic(self) -> bool:
        return self._state.programmatic_depth > 0

    def issue(self, issue_id: str) -> Issue | None:
        for issue in self._state.issues:
            if issue.id == issue_id:
                return issue
        return None

    def issues_by_type(self, issue_type: IssueType | str) -> list[Issue]:
        wanted = IssueType.coerce(issue_type)
        return [issue for issue in self._state.issues if issue.type is wanted]

    def issues_by_severity(self, severity: Severity | str) -> list[Issue]:
        wanted = Severity.coerce(severity)
        return [issue for issue in self._state.issues if issue.severity is wanted]

    def current_text(self) -> str:
        return self._projector(self._surface.get_rich())

    # ------------------------------------------------------------------
    # Re-entrancy gate
    # ------------------------------------------------------------------
    @contextlib.contextmanager
    def programmatic(self) -> Iterator[None]:
        """Suppress analysis scheduling for surface changes made inside the block."""

        self._state.programmatic_depth += 1
        try:
            yield
        finally:
            self._state.programmatic_depth = max(0, self._state.programmatic_depth - 1)

    # ------------------------------------------------------------------
    # Analysis entry points
    # ------------------------------------------------------------------
    def on_content_changed(self, rich: str) -> int | None:
        """Project ``rich`` and schedule a debounced analysis of it."""

        if self._document is not None:
            self._document.update_rich(rich)
        if self.is_programmatic:
            LOGGER.debug("Ignoring programmatic content change")
            return None
        text = self._projector(rich)
        generation = self._scheduler.schedule(text)
        if generation is not None:
            self._state.requested_chars = len(text)
        return generation

    def schedule_current(self) -> int | None:
        return self.on_content_changed(self._surface.get_rich())

    async def manual_analyze(self) -> AnalysisOutcome | None:
        """Analyse the surface's current content immediately."""

        text = self.current_text()
        self._state.requested_chars = len(text)
        return await self._scheduler.manual_analyze(text)

    async def drain(self) -> None:
        await self._scheduler.drain()

    def set_enabled(self, enabled: bool) -> None:
        """Toggle analysis; disabling drops issues, dismissals and marks."""

        enabled = bool(enabled)
        if enabled == self._scheduler.enabled:
            return
        self._settings.analysis_enabled = enabled
        self._scheduler.set_enabled(enabled)
        if not enabled:
            self._reset_state()
            return
        self.schedule_current()

    def update_settings(self, settings: Settings) -> None:
        """Apply new detection options and timing; takes effect on the next request."""

        self._settings = settings
        config = self._scheduler.config
        config.debounce_seconds = settings.debounce_seconds
        config.min_length = settings.min_length
        self._scheduler.update_options(settings.detection_options())
        if settings.analysis_enabled != self._scheduler.enabled:
            self.set_enabled(settings.analysis_enabled)

    def clear(self) -> None:
        """Forget issues, the last analysed text and every dismissal."""

        self._scheduler.reset()
        self._reset_state()

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    def dismiss(self, issue_id: str) -> bool:
        issue = self.issue(issue_id)
        text = self._state.last_analyzed
        if issue is None or text is None:
            return False
        self._tracker.dismiss(issue, text)
        self._drop_issues([issue])
        self._bus.publish(IssueDismissed(issue_id=issue_id))
        return True

    def focus_issue(self, issue_id: str) -> bool:
        """Select the issue's range on the surface."""

        issue = self.issue(issue_id)
        text = self._state.last_analyzed
        if issue is None or text is None:
            return False
        match = self._renderer.resolve(issue, text, self._surface.get_plain_text())
        if match is None:
            return False
        self._surface.set_selection(match.span)
        return True

    def accept(self, issue_id: str, suggestion: str | None = None) -> ApplyOutcome:
        """Apply one suggestion; the issue is dismissed only when it was applied."""

        rich = self._surface.get_rich()
        issue = self.issue(issue_id)
        text = self._state.last_analyzed
        if issue is None or text is None:
            return ApplyOutcome(rich=rich, applied=False, reason="unknown_issue")
        try:
            change = CorrectionChange.from_issue(issue, text, suggestion=suggestion)
        except ValueError:
            return ApplyOutcome(rich=rich, applied=False, reason="no_suggestion")
        outcome = self._applier.apply_one(rich, change)
        if outcome.applied:
            self._write_back(outcome.rich)
            self._tracker.dismiss(issue, text)
            self._drop_issues([issue])
        else:
            LOGGER.warning("Correction for issue %s could not be applied", issue_id)
        self._report_corrections(int(outcome.applied), int(not outcome.applied), (issue_id,))
        return outcome

    def accept_all(self, issue_type: IssueType | str | None = None) -> BatchOutcome:
        """Apply the first suggestion of every current issue (optionally of one type).

        Every targeted issue is dismissed afterwards, whether or not its change
        could be applied.
        """

        rich = self._surface.get_rich()
        text = self._state.last_analyzed
        if text is None:
            return BatchOutcome(rich=rich)
        wanted = IssueType.coerce(issue_type) if issue_type is not None else None
        targets = [
            issue
            for issue in self._state.issues
            if issue.suggestions and (wanted is None or issue.type is wanted)
        ]
        if not targets:
            return BatchOutcome(rich=rich)
        changes = [CorrectionChange.from_issue(issue, text) for issue in targets]
        batch = self._applier.apply_many(rich, changes)
        if batch.applied_count:
            self._write_back(batch.rich)
        if batch.failed_count:
            LOGGER.warning(
                "Some corrections could not be applied (applied=%s failed=%s)",
                batch.applied_count,
                batch.failed_count,
            )
        self._tracker.dismiss_many(targets, text)
        self._drop_issues(targets)
        self._report_corrections(batch.applied_count, batch.failed_count, tuple(issue.id for issue in targets))
        return batch

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def load_document(self, document: RichDocument, *, analyze: bool = True) -> int | None:
        """Show ``document`` on the surface, replacing the current content."""

        self._scheduler.reset()
        self._document = document
        self._reset_state()
        with self.programmatic():
            self._surface.set_rich(document.rich)
        document.dirty = False
        if not analyze:
            return None
        return self.schedule_current()

    def save(self) -> RichDocument:
        if self._document is None or self._store is None:
            raise RuntimeError("No document store is attached to this session")
        self._document.update_rich(self._surface.get_rich())
        self._store.save(self._document)
        self._document.dirty = False
        return self._document

    async def aclose(self) -> None:
        await self._scheduler.aclose()
        self._scheduler.remove_listener(self._handle_outcome)
        closer = getattr(self._detector, "aclose", None)
        if callable(closer):
            await closer()

    # ------------------------------------------------------------------
    # Scheduler + surface callbacks
    # ------------------------------------------------------------------
    def _handle_surface_changed(self, rich: str) -> None:
        self.on_content_changed(rich)

    def _handle_scheduler_state(self, state: SchedulerState, generation: int) -> None:
        if state is SchedulerState.ANALYZING:
            self._bus.publish(AnalysisStarted(generation=generation, chars=self._state.requested_chars))

    def _handle_outcome(self, outcome: AnalysisOutcome) -> None:
        self._state.generation = outcome.generation
        if outcome.failed:
            self._state.issues = ()
            self._state.statistics = None
            self._state.error = outcome.error
            self._paint(())
            self._bus.publish(AnalysisFailed(generation=outcome.generation, error=outcome.error or ""))
            return
        self._state.error = None
        if outcome.skipped:
            self._state.issues = ()
            self._state.statistics = None
            self._state.last_analyzed = None
            self._paint(())
            self._bus.publish(IssuesUpdated(generation=outcome.generation))
            return
        text = outcome.text
        dismissed_reset = self._tracker.observe(text)
        visible = tuple(self._tracker.filter(outcome.result.issues, text))
        summary = outcome.result.summary
        statistics = summary.recount(visible) if summary is not None else SummaryStats.from_issues(visible, text=text)
        self._state.issues = visible
        self._state.statistics = statistics
        self._state.last_analyzed = text
        LOGGER.debug(
            "Accepted generation %s: %s issue(s), %s dismissed",
            outcome.generation,
            len(visible),
            len(outcome.result.issues) - len(visible),
        )
        self._bus.publish(
            IssuesUpdated(
                generation=outcome.generation,
                issues=visible,
                statistics=statistics,
                dismissed_reset=dismissed_reset,
            )
        )
        self._paint(visible)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _paint(self, issues: Sequence[Issue]) -> RenderReport:
        with self.programmatic():
            if issues and self._state.last_analyzed is not None:
                report = self._renderer.render(issues, self._state.last_analyzed)
            else:
                self._renderer.clear()
                report = self._renderer.last_report
        self._bus.publish(AnnotationsRendered(painted=report.painted_count, skipped=report.skipped_count))
        return report

    def _write_back(self, rich: str) -> None:
        with self.programmatic():
            self._surface.set_rich(rich)
        if self._document is not None:
            self._document.update_rich(self._surface.get_rich())

    def _drop_issues(self, removed: Sequence[Issue]) -> None:
        removed_ids = {issue.id for issue in removed}
        remaining = tuple(issue for issue in self._state.issues if issue.id not in removed_ids)
        self._state.issues = remaining
        if self._state.statistics is not None:
            self._state.statistics = self._state.statistics.recount(remaining)
        self._bus.publish(
            IssuesUpdated(
                generation=self._state.generation,
                issues=remaining,
                statistics=self._state.statistics,
            )
        )
        self._paint(remaining)

    def _report_corrections(self, applied: int, failed: int, issue_ids: tuple[str, ...]) -> None:
        event = CorrectionsApplied(applied=applied, failed=failed, issue_ids=issue_ids)
        self._bus.publish(event)
        emit(
            CORRECTIONS_APPLIED,
            {"applied": applied, "failed": failed, "partial": event.partial, "issues": len(issue_ids)},
        )

    def _reset_state(self) -> None:
        self._tracker.clear()
        self._state.issues = ()
        self._state.statistics = None
        self._state.error = None
        self._state.last_analyzed = None
        self._paint(())
        self._bus.publish(IssuesUpdated(generation=self._scheduler.generation))

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "generation": self._state.generation,
            "issues": [issue.to_dict() for issue in self._state.issues],
            "dismissed": len(self._tracker),
            "error": self._state.error,
        }


__all__ = ["IssuesStatus", "ProofreadingSession"]
