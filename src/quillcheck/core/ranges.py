"""Half-open text spans shared by detection, correction and rendering."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator


def _as_offset(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"TextRange {label} must be an integer")
    try:
        offset = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"TextRange {label} must be an integer") from exc
    return max(0, offset)


@dataclass(slots=True, frozen=True)
class TextRange:
    """``[start, end)`` in plain-text code units.

    Negative bounds clamp to ``0`` and reversed bounds are swapped, so every
    instance satisfies ``0 <= start <= end``.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        start = _as_offset(self.start, "start")
        end = _as_offset(self.end, "end")
        object.__setattr__(self, "start", min(start, end))
        object.__setattr__(self, "end", max(start, end))

    def __iter__(self) -> Iterator[int]:
        return iter((self.start, self.end))

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_caret(self) -> bool:
        return self.start == self.end

    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    def slice(self, text: str) -> str:
        return text[self.start : self.end]

    def shift(self, delta: int) -> TextRange:
        return TextRange(self.start + delta, self.end + delta)

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end

    def overlaps(self, other: TextRange) -> bool:
        """Return ``True`` when both ranges share at least one code unit."""

        if self.is_caret or other.is_caret:
            return False
        return self.start < other.end and other.start < self.end

    def clamp(self, *, lower: int = 0, upper: int) -> TextRange:
        """Limit both bounds to ``[lower, upper]``."""

        return TextRange(
            min(max(self.start, lower), upper),
            min(max(self.end, lower), upper),
        )

    @classmethod
    def from_value(cls, value: Any, *, fallback: tuple[int, int] | None = None) -> TextRange:
        """Build a range from a ``TextRange``, ``{start, end}`` mapping, pair, or object.

        Missing bounds come from ``fallback``; without one they raise ``ValueError``.
        """

        if isinstance(value, TextRange):
            return value
        if isinstance(value, Mapping):
            start, end = value.get("start"), value.get("end")
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            if len(value) != 2:
                raise ValueError("TextRange sequences must have exactly two entries")
            start, end = value
        elif value is None:
            start = end = None
        elif hasattr(value, "start") and hasattr(value, "end"):
            start, end = value.start, value.end
        else:
            raise TypeError(f"Cannot build a TextRange from {type(value).__name__}")
        if start is None or end is None:
            if fallback is None:
                raise ValueError("TextRange requires both start and end")
            start = fallback[0] if start is None else start
            end = fallback[1] if end is None else end
        return cls(start, end)


def utf16_offset(text: str, index: int) -> int:
    """Convert a code-point index into ``text`` to a UTF-16 code-unit offset."""

    index = max(0, min(index, len(text)))
    return index + sum(1 for char in text[:index] if ord(char) > 0xFFFF)


def codepoint_offset(text: str, units: int) -> int:
    """Convert a UTF-16 code-unit offset into ``text`` to a code-point index.

    Offsets that land inside a surrogate pair round up to the next character;
    offsets past the end clamp to ``len(text)``.
    """

    consumed = 0
    for index, char in enumerate(text):
        if consumed >= units:
            return index
        consumed += 2 if ord(char) > 0xFFFF else 1
    return len(text)


__all__ = ["TextRange", "codepoint_offset", "utf16_offset"]
