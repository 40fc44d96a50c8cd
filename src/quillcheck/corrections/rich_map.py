"""On-demand bridge from canonical plain-text offsets back to markup offsets.

:class:`RichTextMap` walks markup with exactly the rules used by
:func:`quillcheck.analysis.projector.project` (tags become one space, the fixed
entity table is decoded, whitespace runs collapse, ends are trimmed) but keeps
the source span behind every plain character. It is rebuilt for every edit and
never cached, so it cannot drift from the content it describes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from ..analysis.projector import ENTITY_RE, ENTITY_TABLE, escape_text
from ..core.ranges import TextRange

LOGGER = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s")


class TokenKind(str, Enum):
    TEXT = "text"
    ENTITY = "entity"
    TAG = "tag"


@dataclass(slots=True, frozen=True)
class SourceToken:
    """A slice of markup: one tag, one entity reference, or one literal character."""

    kind: TokenKind
    start: int
    end: int
    char: str

    @property
    def is_tag(self) -> bool:
        return self.kind is TokenKind.TAG


@dataclass(slots=True, frozen=True)
class PlainUnit:
    """One character of the projected text and the markup span that produced it."""

    char: str
    start: int
    end: int


def tokenize(rich: str) -> list[SourceToken]:
    """Split markup into tag, entity, and literal-character tokens.

    A ``<`` opens a tag only when a ``>`` follows somewhere later; otherwise it
    is literal text.
    """

    tokens: list[SourceToken] = []
    index = 0
    length = len(rich)
    while index < length:
        char = rich[index]
        if char == "<":
            close = rich.find(">", index + 1)
            if close >= 0:
                tokens.append(SourceToken(TokenKind.TAG, index, close + 1, " "))
                index = close + 1
                continue
        elif char == "&":
            match = ENTITY_RE.match(rich, index)
            if match is not None:
                decoded = ENTITY_TABLE[match.group(0)]
                tokens.append(SourceToken(TokenKind.ENTITY, index, match.end(), decoded))
                index = match.end()
                continue
        tokens.append(SourceToken(TokenKind.TEXT, index, index + 1, char))
        index += 1
    return tokens


class RichTextMap:
    """Plain-text view of markup that remembers where each character came from."""

    __slots__ = ("_rich", "_tokens", "_units", "_text")

    def __init__(self, rich: str) -> None:
        self._rich = rich if isinstance(rich, str) else ""
        self._tokens = tokenize(self._rich)
        self._units = self._collapse(self._tokens)
        self._text = "".join(unit.char for unit in self._units)

    @property
    def rich(self) -> str:
        return self._rich

    @property
    def text(self) -> str:
        """The projected plain text; always equal to ``project(self.rich)``."""

        return self._text

    @property
    def units(self) -> tuple[PlainUnit, ...]:
        return tuple(self._units)

    def __len__(self) -> int:
        return len(self._units)

    @staticmethod
    def _collapse(tokens: list[SourceToken]) -> list[PlainUnit]:
        units: list[PlainUnit] = []
        run_start: int | None = None
        run_end = 0
        for token in tokens:
            if _SPACE_RE.match(token.char):
                if run_start is None:
                    run_start = token.start
                run_end = token.end
                continue
            if run_start is not None:
                units.append(PlainUnit(" ", run_start, run_end))
                run_start = None
            units.append(PlainUnit(token.char, token.start, token.end))
        if run_start is not None:
            units.append(PlainUnit(" ", run_start, run_end))
        if units and units[0].char == " ":
            units.pop(0)
        if units and units[-1].char == " ":
            units.pop()
        return units

    def source_span(self, span: TextRange) -> TextRange:
        """Return the markup span covering plain-text ``span``."""

        span = span.clamp(upper=len(self._units))
        if span.is_caret:
            offset = self._insertion_offset(span.start)
            return TextRange(offset, offset)
        return TextRange(self._units[span.start].start, self._units[span.end - 1].end)

    def replace(self, span: TextRange, replacement: str) -> str:
        """Return new markup with plain-text ``span`` replaced by ``replacement``.

        Tags inside the affected markup region are preserved. The escaped
        replacement is written where the first covered text token was, and all
        other covered text tokens are dropped.
        """

        if span.end > len(self._units):
            raise ValueError(f"Span {span.to_tuple()} exceeds plain text length {len(self._units)}")
        escaped = escape_text(replacement)
        region = self.source_span(span)
        if region.is_caret:
            return self._rich[: region.start] + escaped + self._rich[region.start :]
        pieces: list[str] = []
        inserted = False
        for token in self._tokens:
            if token.end <= region.start or token.start >= region.end:
                continue
            if token.is_tag:
                pieces.append(self._rich[token.start : token.end])
                continue
            if not inserted:
                pieces.append(escaped)
                inserted = True
        if not inserted:
            # The span only covered tag boundaries; place the text ahead of them.
            pieces.insert(0, escaped)
        return self._rich[: region.start] + "".join(pieces) + self._rich[region.end :]

    def _insertion_offset(self, plain_offset: int) -> int:
        if not self._units:
            return len(self._rich)
        if plain_offset < len(self._units):
            return self._units[plain_offset].start
        return self._units[-1].end


__all__ = ["PlainUnit", "RichTextMap", "SourceToken", "TokenKind", "tokenize"]
