"""Typed event bus used to fan proofreading state out to views.

Sessions publish events after every accepted analysis, correction, dismissal,
and repaint so widgets (and tests) can observe the engine without holding a
reference to its internals.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Generic, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

    from .analysis.models import Issue, SummaryStats

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all proofreading events."""


@dataclass(slots=True)
class AnalysisStarted(Event):
    """Emitted when a detector call begins for ``generation``."""

    generation: int
    chars: int


@dataclass(slots=True)
class IssuesUpdated(Event):
    """Emitted when an accepted analysis result replaces the visible issue list.

    Attributes:
        generation: Generation of the accepted result.
        issues: Issues left after dismissed fingerprints were filtered out.
        statistics: Summary counters, or ``None`` when analysis was skipped.
        dismissed_reset: ``True`` when a large rewrite cleared the dismissed set.
    """

    generation: int
    issues: tuple["Issue", ...] = ()
    statistics: "SummaryStats | None" = None
    dismissed_reset: bool = False


@dataclass(slots=True)
class AnalysisFailed(Event):
    """Emitted when the detector raised; issues have already been cleared."""

    generation: int
    error: str


@dataclass(slots=True)
class CorrectionsApplied(Event):
    """Emitted after a single or batch correction.

    Attributes:
        applied: Number of changes written into the rich content.
        failed: Number of changes whose fragment could no longer be found.
        issue_ids: Issues targeted by the operation (all are dismissed).
    """

    applied: int
    failed: int
    issue_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def partial(self) -> bool:
        return self.applied > 0 and self.failed > 0


@dataclass(slots=True)
class IssueDismissed(Event):
    issue_id: str


@dataclass(slots=True)
class AnnotationsRendered(Event):
    """Emitted after the renderer settles."""

    painted: int
    skipped: int


class EventBus(Generic[E]):
    """A typed publish-subscribe bus.

    Bound methods are held through :class:`weakref.WeakMethod` so a discarded
    widget stops receiving events without having to unsubscribe. Plain
    functions and lambdas are held strongly. Not thread-safe; publish from the
    event-loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""

        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed handler %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                return

    def publish(self, event: E) -> None:
        """Invoke every live handler for ``event`` in registration order.

        A handler that raises is logged and the remaining handlers still run.
        """

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))
        dead: list[int] = []
        for index, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        for index in reversed(dead):
            if index < len(handlers):
                handlers.pop(index)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = [
    "AnalysisFailed",
    "AnalysisStarted",
    "AnnotationsRendered",
    "CorrectionsApplied",
    "Event",
    "EventBus",
    "Handler",
    "IssueDismissed",
    "IssuesUpdated",
]
