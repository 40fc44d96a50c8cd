"""Paint issue marks onto an editing surface.

Every render is a full cycle: clear all marks, resolve each issue to a native
range, paint the ones that resolved, then force a layout refresh. Issues whose
fragment cannot be found are skipped instead of being highlighted in the wrong
place.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Sequence

from ..analysis.locate import FULL_LADDER, DEFAULT_PREFIX_CHARS, LocateRequest, LocateStrategy, Match, locate
from ..analysis.models import Issue
from ..core.ranges import TextRange
from ..editor.surface import EditingSurface, MarkAttributes
from ..services.telemetry import ANNOTATIONS_PAINTED, emit

LOGGER = logging.getLogger(__name__)

PhaseListener = Callable[["RenderPhase"], None]


class RenderPhase(str, Enum):
    IDLE = "idle"
    CLEARING = "clearing"
    RESOLVING = "resolving"
    PAINTING = "painting"
    SETTLED = "settled"


@dataclass(slots=True, frozen=True)
class ResolvedMark:
    """An issue together with the native surface range it was painted over."""

    issue: Issue
    span: TextRange
    strategy: str
    exact: bool = True


@dataclass(slots=True, frozen=True)
class RenderReport:
    painted: tuple[ResolvedMark, ...] = ()
    skipped: tuple[Issue, ...] = ()
    duration_ms: float = 0.0

    @property
    def painted_count(self) -> int:
        return len(self.painted)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)


@dataclass(slots=True)
class _RenderState:
    phase: RenderPhase = RenderPhase.IDLE
    last_report: RenderReport = field(default_factory=RenderReport)
    renders: int = 0


class AnnotationRenderer:
    """Maps plain-text issue ranges onto ``surface`` and paints them."""

    DIRECT = "direct"

    def __init__(
        self,
        surface: EditingSurface,
        *,
        strategies: Sequence[LocateStrategy] = FULL_LADDER,
        prefix_chars: int = DEFAULT_PREFIX_CHARS,
    ) -> None:
        self._surface = surface
        self._strategies = tuple(strategies)
        self._prefix_chars = max(1, int(prefix_chars))
        self._state = _RenderState()
        self._phase_listeners: list[PhaseListener] = []

    @property
    def surface(self) -> EditingSurface:
        return self._surface

    @property
    def phase(self) -> RenderPhase:
        return self._state.phase

    @property
    def last_report(self) -> RenderReport:
        return self._state.last_report

    @property
    def render_count(self) -> int:
        return self._state.renders

    def add_phase_listener(self, listener: PhaseListener) -> None:
        self._phase_listeners.append(listener)

    def render(self, issues: Iterable[Issue], detection_text: str) -> RenderReport:
        """Replace every mark on the surface with marks for ``issues``.

        ``detection_text`` is the plain text the issues were computed against;
        fragments are cut from it, never from the surface's current text.
        """

        started = time.perf_counter()
        self._set_phase(RenderPhase.CLEARING)
        self._surface.clear_marks()

        self._set_phase(RenderPhase.RESOLVING)
        surface_text = self._surface.get_plain_text()
        resolved: list[ResolvedMark] = []
        skipped: list[Issue] = []
        for issue in issues:
            match = self.resolve(issue, detection_text, surface_text)
            if match is None:
                LOGGER.debug("Skipping mark for issue %s; fragment not found on surface", issue.id)
                skipped.append(issue)
                continue
            resolved.append(ResolvedMark(issue=issue, span=match.span, strategy=match.strategy, exact=match.exact))

        self._set_phase(RenderPhase.PAINTING)
        painted: list[ResolvedMark] = []
        for item in resolved:
            if self._surface.apply_mark(MarkAttributes.from_issue(item.issue), item.span):
                painted.append(item)
            else:
                skipped.append(item.issue)

        self._surface.refresh_layout()
        report = RenderReport(
            painted=tuple(painted),
            skipped=tuple(skipped),
            duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
        )
        self._state.last_report = report
        self._state.renders += 1
        self._set_phase(RenderPhase.SETTLED)
        emit(
            ANNOTATIONS_PAINTED,
            {
                "painted": report.painted_count,
                "skipped": report.skipped_count,
                "duration_ms": report.duration_ms,
            },
        )
        return report

    def clear(self) -> None:
        self._set_phase(RenderPhase.CLEARING)
        self._surface.clear_marks()
        self._surface.refresh_layout()
        self._state.last_report = RenderReport()
        self._set_phase(RenderPhase.SETTLED)

    def resolve(self, issue: Issue, detection_text: str, surface_text: str) -> Match | None:
        """Return the native range for ``issue`` or ``None`` when it cannot be placed."""

        origin = self._surface.position_origin
        if issue.end > len(detection_text) or issue.position.is_caret:
            return None
        if surface_text == detection_text:
            return Match(issue.position.shift(origin), self.DIRECT)
        request = LocateRequest(
            fragment=issue.fragment(detection_text),
            hint=issue.position,
            prefix_chars=self._prefix_chars,
        )
        match = locate(request, surface_text, strategies=self._strategies)
        if match is None:
            return None
        return Match(match.span.shift(origin), match.strategy, match.exact)

    def _set_phase(self, phase: RenderPhase) -> None:
        self._state.phase = phase
        for listener in list(self._phase_listeners):
            try:
                listener(phase)
            except Exception:
                LOGGER.exception("Render phase listener %s failed", listener)


__all__ = ["AnnotationRenderer", "RenderPhase", "RenderReport", "ResolvedMark"]
