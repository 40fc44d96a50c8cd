"""Projection of rich (markup) content into canonical plain text.

The projection is intentionally lossy: tags become single spaces, a fixed table
of entity references is decoded, whitespace runs collapse to one space, and the
ends are trimmed. No position table is kept; callers that need to get back from
plain-text offsets to markup must search for text (see
:mod:`quillcheck.analysis.locate`) or build a fresh
:class:`quillcheck.corrections.rich_map.RichTextMap`.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping

LOGGER = logging.getLogger(__name__)

TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")

# Decoded in a single pass so ``&amp;lt;`` yields ``&lt;`` rather than ``<``.
ENTITY_TABLE: Mapping[str, str] = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&#x27;": "'",
    "&apos;": "'",
}
ENTITY_RE = re.compile("|".join(re.escape(entity) for entity in ENTITY_TABLE))


def project(rich: Any) -> str:
    """Return the canonical plain text for ``rich``.

    Never raises: ``None``, non-string input, and empty markup all yield ``""``.
    """

    if not isinstance(rich, str) or not rich:
        return ""
    stripped = TAG_RE.sub(" ", rich)
    decoded = decode_entities(stripped)
    collapsed = WHITESPACE_RE.sub(" ", decoded)
    return collapsed.strip(" ")


def decode_entities(text: str) -> str:
    """Decode the fixed entity table in one left-to-right pass."""

    if "&" not in text:
        return text
    return ENTITY_RE.sub(lambda match: ENTITY_TABLE[match.group(0)], text)


def escape_text(text: str) -> str:
    """Escape characters that would otherwise be read back as markup."""

    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


class PlainTextProjector:
    """Callable wrapper around :func:`project` with a one-entry memo.

    Projections are pure, so caching the last input is only an optimisation for
    callers that project the same markup several times in a row.
    """

    __slots__ = ("_last_input", "_last_output")

    def __init__(self) -> None:
        self._last_input: str | None = None
        self._last_output: str = ""

    def __call__(self, rich: Any) -> str:
        return self.project(rich)

    def project(self, rich: Any) -> str:
        if isinstance(rich, str) and rich == self._last_input:
            return self._last_output
        output = project(rich)
        if isinstance(rich, str):
            self._last_input = rich
            self._last_output = output
        return output


@dataclass(slots=True, frozen=True)
class DocumentStats:
    """Word and character counters shown alongside the editor."""

    word_count: int = 0
    character_count: int = 0
    character_count_no_spaces: int = 0
    paragraph_count: int = 0
    reading_time: int = 0


_PARAGRAPH_TAG_RE = re.compile(r"<p[^>]*>")
_BLANK_LINE_RE = re.compile(r"\n\s*\n")


def document_stats(rich: Any) -> DocumentStats:
    """Compute word/character/paragraph counts for ``rich`` content."""

    text = project(rich)
    words = text.split() if text else []
    markup = rich if isinstance(rich, str) else ""
    paragraphs = max(
        1,
        len(_PARAGRAPH_TAG_RE.findall(markup)),
        len(_BLANK_LINE_RE.findall(markup)) + 1,
    )
    return DocumentStats(
        word_count=len(words),
        character_count=len(text),
        character_count_no_spaces=len(WHITESPACE_RE.sub("", text)),
        paragraph_count=paragraphs,
        reading_time=math.ceil(len(words) / 200),
    )


__all__ = [
    "DocumentStats",
    "ENTITY_TABLE",
    "PlainTextProjector",
    "decode_entities",
    "document_stats",
    "escape_text",
    "project",
]
