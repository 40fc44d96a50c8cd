"""Editing-surface capability set and a headless HTML implementation.

The proofreading engine only needs a handful of operations from whatever
component the user types into: read its plain text, address a range, paint and
clear marks, replace a range, and force a layout pass. Any rich-text component
that implements :class:`EditingSurface` is substitutable; the Qt version lives
in :mod:`quillcheck.editor.qt_surface`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol, Sequence

from ..analysis.models import Issue
from ..analysis.projector import project
from ..core.ranges import TextRange
from ..corrections.rich_map import RichTextMap

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


@dataclass(slots=True, frozen=True)
class MarkAttributes:
    """Payload carried by an issue annotation."""

    error_id: str
    type: str
    severity: str
    message: str = ""
    suggestions: tuple[str, ...] = ()

    @classmethod
    def from_issue(cls, issue: Issue) -> MarkAttributes:
        return cls(
            error_id=issue.id,
            type=issue.type.value,
            severity=issue.severity.value,
            message=issue.message or issue.short_message,
            suggestions=tuple(issue.suggestions),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "errorId": self.error_id,
            "errorType": self.type,
            "severity": self.severity,
            "message": self.message,
            "suggestions": list(self.suggestions),
        }


@dataclass(slots=True, frozen=True)
class Mark:
    """An annotation painted over a native range of the surface."""

    range: TextRange
    attrs: MarkAttributes


class EditingSurface(Protocol):
    """Minimal capability set the proofreading engine consumes."""

    position_origin: int

    def get_plain_text(self) -> str:
        ...

    def set_selection(self, span: TextRange) -> None:
        ...

    def apply_mark(self, attrs: MarkAttributes, span: TextRange | None = None) -> bool:
        ...

    def clear_marks(self) -> None:
        ...

    def replace_range(self, span: TextRange, text: str) -> None:
        ...

    def refresh_layout(self) -> None:
        ...

    def get_rich(self) -> str:
        ...

    def set_rich(self, rich: str) -> None:
        ...

    def add_change_listener(self, listener: ChangeListener) -> None:
        ...


@dataclass(slots=True)
class _LayoutState:
    refreshes: int = 0
    visible: tuple[Mark, ...] = field(default_factory=tuple)


class HtmlEditingSurface:
    """Headless surface over an HTML string.

    Native positions are plain-text offsets plus :attr:`position_origin`, so a
    surface with ``position_origin=1`` behaves like editors that count the
    enclosing document node as position 0. Marks become "visible" only after
    :meth:`refresh_layout`, mirroring renderers that batch decoration updates.
    """

    def __init__(self, rich: str = "", *, position_origin: int = 0) -> None:
        self.position_origin = max(0, int(position_origin))
        self._rich = rich if isinstance(rich, str) else ""
        self._selection = TextRange(self.position_origin, self.position_origin)
        self._marks: list[Mark] = []
        self._listeners: list[ChangeListener] = []
        self._layout = _LayoutState()

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def get_plain_text(self) -> str:
        return project(self._rich)

    def get_rich(self) -> str:
        return self._rich

    def set_rich(self, rich: str) -> None:
        """Replace the whole body; existing marks are dropped."""

        rich = rich if isinstance(rich, str) else ""
        if rich == self._rich:
            return
        self._rich = rich
        self._marks.clear()
        self._emit_changed()

    def type_text(self, rich: str) -> None:
        """Simulate a user edit that replaces the body."""

        self.set_rich(rich)

    def replace_range(self, span: TextRange, text: str) -> None:
        """Replace a native range, shifting marks that follow it."""

        plain_span = self._to_plain(span)
        mapping = RichTextMap(self._rich)
        if plain_span.end > len(mapping.text):
            raise ValueError(f"Range {span.to_tuple()} is outside the document")
        before = len(mapping.text)
        updated = mapping.replace(plain_span, text)
        delta = len(project(updated)) - before
        self._marks = shift_marks(self._marks, span, delta)
        self._rich = updated
        self._selection = TextRange(span.start, span.start + len(text))
        self._emit_changed()

    # ------------------------------------------------------------------
    # Selection + marks
    # ------------------------------------------------------------------
    @property
    def selection(self) -> TextRange:
        return self._selection

    def set_selection(self, span: TextRange) -> None:
        upper = len(self.get_plain_text()) + self.position_origin
        self._selection = span.clamp(lower=self.position_origin, upper=upper)

    def apply_mark(self, attrs: MarkAttributes, span: TextRange | None = None) -> bool:
        """Mark ``span`` (or the current selection); returns ``False`` when it is out of bounds."""

        target = span if span is not None else self._selection
        if target.is_caret:
            return False
        plain = self._to_plain(target)
        if target.start < self.position_origin or plain.end > len(self.get_plain_text()):
            LOGGER.debug("Rejected mark %s outside document bounds", target.to_tuple())
            return False
        self._marks.append(Mark(target, attrs))
        return True

    def clear_marks(self) -> None:
        self._marks.clear()

    @property
    def marks(self) -> tuple[Mark, ...]:
        return tuple(self._marks)

    @property
    def mark_count(self) -> int:
        return len(self._marks)

    def marks_at(self, position: int) -> list[Mark]:
        return [mark for mark in self._marks if mark.range.contains(position)]

    def marked_text(self) -> list[str]:
        """Return the plain text under every mark, in paint order."""

        text = self.get_plain_text()
        return [self._to_plain(mark.range).slice(text) for mark in self._marks]

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def refresh_layout(self) -> None:
        self._layout.refreshes += 1
        self._layout.visible = tuple(self._marks)

    @property
    def layout_refreshes(self) -> int:
        return self._layout.refreshes

    @property
    def visible_marks(self) -> tuple[Mark, ...]:
        return self._layout.visible

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_change_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._rich)
            except Exception:  # pragma: no cover - listeners must not break editing
                LOGGER.exception("Surface change listener %s failed", listener)

    def _to_plain(self, span: TextRange) -> TextRange:
        return TextRange(span.start - self.position_origin, span.end - self.position_origin)

    def snapshot(self) -> Mapping[str, Any]:
        return {
            "rich": self._rich,
            "text": self.get_plain_text(),
            "marks": [dict(range=mark.range.to_dict(), **mark.attrs.to_dict()) for mark in self._marks],
        }


def shift_marks(marks: Sequence[Mark], span: TextRange, delta: int) -> list[Mark]:
    """Drop marks touched by an edit of ``span`` and move the ones after it by ``delta``."""

    kept: list[Mark] = []
    for mark in marks:
        if mark.range.end <= span.start:
            kept.append(mark)
        elif mark.range.start >= span.end:
            kept.append(Mark(mark.range.shift(delta), mark.attrs))
    return kept


def marks_for(surface: HtmlEditingSurface, issue_ids: Sequence[str]) -> list[Mark]:
    wanted = set(issue_ids)
    return [mark for mark in surface.marks if mark.attrs.error_id in wanted]


__all__ = [
    "ChangeListener",
    "EditingSurface",
    "HtmlEditingSurface",
    "Mark",
    "MarkAttributes",
    "marks_for",
    "shift_marks",
]
