"""PySide6 editing surface backed by a rich-text ``QTextEdit``.

Issue marks are painted as ``QTextEdit.ExtraSelection`` overlays, so they never
touch the document's own formatting and never enter the undo stack. Native
positions are ``QTextCursor`` positions: UTF-16 code units, with each paragraph
separator counted as one unit. Ranges are converted from and to code-point
offsets against ``QTextDocument.toPlainText()`` at this boundary.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from PySide6.QtGui import QColor, QTextCharFormat, QTextCursor
from PySide6.QtWidgets import QTextEdit

from ..core.ranges import TextRange, codepoint_offset, utf16_offset
from .surface import ChangeListener, Mark, MarkAttributes, shift_marks

LOGGER = logging.getLogger(__name__)

_TYPE_COLORS: dict[str, tuple[int, int, int]] = {
    "spelling": (220, 38, 38),
    "grammar": (37, 99, 235),
    "style": (22, 163, 74),
}
_FALLBACK_COLOR = (202, 138, 4)
_BODY_RE = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)


class QtEditingSurface:
    """Adapts a ``QTextEdit`` to the :class:`~quillcheck.editor.surface.EditingSurface` protocol."""

    position_origin = 0

    def __init__(self, editor: Any | None = None, parent: Any | None = None) -> None:
        self._editor = editor if editor is not None else QTextEdit(parent)
        self._editor.setAcceptRichText(True)
        self._marks: list[Mark] = []
        self._listeners: list[ChangeListener] = []
        self._brushes: dict[str, Any] = {}
        self._editor.textChanged.connect(self._handle_qt_text_changed)  # type: ignore[attr-defined]

    @property
    def widget(self) -> Any:
        return self._editor

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------
    def get_plain_text(self) -> str:
        return self._editor.toPlainText()

    def get_rich(self) -> str:
        """Return the document body markup without Qt's head and stylesheet."""

        return body_markup(self._editor.toHtml())

    def set_rich(self, rich: str) -> None:
        self._marks.clear()
        self._editor.setHtml(rich or "")
        self._apply_extra_selections()

    def replace_range(self, span: TextRange, text: str) -> None:
        upper = len(self.get_plain_text())
        if span.end > upper:
            raise ValueError(f"Range {span.to_tuple()} is outside the document")
        self._marks = shift_marks(self._marks, span, len(text) - span.length)
        cursor = self._cursor_for(span)
        cursor.beginEditBlock()
        cursor.insertText(text)
        cursor.endEditBlock()

    # ------------------------------------------------------------------
    # Selection + marks
    # ------------------------------------------------------------------
    def set_selection(self, span: TextRange) -> None:
        span = span.clamp(upper=len(self.get_plain_text()))
        self._editor.setTextCursor(self._cursor_for(span))

    def apply_mark(self, attrs: MarkAttributes, span: TextRange | None = None) -> bool:
        if span is None:
            cursor = self._editor.textCursor()
            text = self.get_plain_text()
            span = TextRange(
                codepoint_offset(text, cursor.selectionStart()),
                codepoint_offset(text, cursor.selectionEnd()),
            )
        if span.is_caret or span.end > len(self.get_plain_text()):
            LOGGER.debug("Rejected mark %s outside document bounds", span.to_tuple())
            return False
        self._marks.append(Mark(span, attrs))
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

    def mark_under_cursor(self) -> Mark | None:
        position = codepoint_offset(self.get_plain_text(), self._editor.textCursor().position())
        hits = self.marks_at(position)
        return hits[0] if hits else None

    def refresh_layout(self) -> None:
        self._apply_extra_selections()
        self._editor.viewport().update()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_change_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _handle_qt_text_changed(self) -> None:
        rich = self.get_rich()
        for listener in list(self._listeners):
            try:
                listener(rich)
            except Exception:  # pragma: no cover - listeners must not break editing
                LOGGER.exception("Surface change listener %s failed", listener)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _cursor_for(self, span: TextRange) -> QTextCursor:
        text = self.get_plain_text()
        cursor = QTextCursor(self._editor.document())
        cursor.setPosition(utf16_offset(text, span.start))
        cursor.setPosition(utf16_offset(text, span.end), QTextCursor.MoveMode.KeepAnchor)
        return cursor

    def _apply_extra_selections(self) -> None:
        selections: list[Any] = []
        for mark in self._marks:
            selection = QTextEdit.ExtraSelection()
            selection.cursor = self._cursor_for(mark.range)
            format_obj = QTextCharFormat()
            format_obj.setUnderlineStyle(QTextCharFormat.UnderlineStyle.SpellCheckUnderline)
            format_obj.setUnderlineColor(self._brush_for(mark.attrs.type))
            if mark.attrs.message:
                format_obj.setToolTip(mark.attrs.message)
            selection.format = format_obj
            selections.append(selection)
        self._editor.setExtraSelections(selections)

    def _brush_for(self, issue_type: str) -> Any:
        brush = self._brushes.get(issue_type)
        if brush is None:
            brush = QColor(*_TYPE_COLORS.get(issue_type, _FALLBACK_COLOR))
            self._brushes[issue_type] = brush
        return brush


def body_markup(html: str) -> str:
    match = _BODY_RE.search(html or "")
    if match is None:
        return html or ""
    return match.group(1).strip()


__all__ = ["QtEditingSurface", "body_markup"]
