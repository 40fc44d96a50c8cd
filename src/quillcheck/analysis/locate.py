"""Ranked strategies for re-locating a plain-text fragment inside another text.

The projection from rich content is not invertible, so positions recorded at
detection time are only hints. Each strategy either returns a :class:`Match` or
``None``; :func:`locate` walks a ladder of them and stops at the first hit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from ..core.ranges import TextRange

LOGGER = logging.getLogger(__name__)

DEFAULT_PREFIX_CHARS = 5
MIN_PREFIX_FRAGMENT = 3


@dataclass(slots=True, frozen=True)
class LocateRequest:
    """Fragment to find plus the offset it was recorded at."""

    fragment: str
    hint: TextRange | None = None
    prefix_chars: int = DEFAULT_PREFIX_CHARS


@dataclass(slots=True, frozen=True)
class Match:
    """A resolved span and the name of the strategy that produced it."""

    span: TextRange
    strategy: str
    exact: bool = True


class LocateStrategy(Protocol):
    name: str

    def resolve(self, request: LocateRequest, haystack: str) -> Match | None:
        ...


def _nearest(haystack: str, needle: str, hint: TextRange | None) -> int:
    """Return the occurrence of ``needle`` closest to ``hint`` (first one without a hint)."""

    index = haystack.find(needle)
    if index < 0 or hint is None:
        return index
    best = index
    best_distance = abs(index - hint.start)
    while best_distance:
        index = haystack.find(needle, index + 1)
        if index < 0:
            break
        distance = abs(index - hint.start)
        if distance < best_distance:
            best, best_distance = index, distance
        elif index > hint.start:
            break
    return best


class ExactAtOffset:
    """Accept the recorded offsets when the text there still equals the fragment."""

    name = "offset"

    def resolve(self, request: LocateRequest, haystack: str) -> Match | None:
        hint = request.hint
        if hint is None or not request.fragment:
            return None
        if hint.end > len(haystack):
            return None
        if haystack[hint.start : hint.end] != request.fragment:
            return None
        return Match(hint, self.name)


class ExactSearch:
    """Search for the exact fragment, preferring the occurrence nearest the hint."""

    name = "exact"

    def resolve(self, request: LocateRequest, haystack: str) -> Match | None:
        fragment = request.fragment
        if not fragment:
            return None
        index = _nearest(haystack, fragment, request.hint)
        if index < 0:
            return None
        return Match(TextRange(index, index + len(fragment)), self.name)


class TrimmedSearch:
    """Search for the fragment with surrounding whitespace removed."""

    name = "trimmed"

    def resolve(self, request: LocateRequest, haystack: str) -> Match | None:
        trimmed = request.fragment.strip()
        if not trimmed or trimmed == request.fragment:
            return None
        index = _nearest(haystack, trimmed, request.hint)
        if index < 0:
            return None
        return Match(TextRange(index, index + len(trimmed)), self.name)


class PrefixSearch:
    """Last-resort approximate anchor on the first few characters of the fragment."""

    name = "prefix"

    def resolve(self, request: LocateRequest, haystack: str) -> Match | None:
        fragment = request.fragment
        if len(fragment) <= MIN_PREFIX_FRAGMENT or request.prefix_chars <= 0:
            return None
        prefix = fragment[: request.prefix_chars]
        index = _nearest(haystack, prefix, request.hint)
        if index < 0:
            return None
        end = min(len(haystack), index + len(fragment))
        return Match(TextRange(index, end), self.name, exact=False)


EXACT_LADDER: tuple[LocateStrategy, ...] = (ExactAtOffset(), ExactSearch(), TrimmedSearch())
FULL_LADDER: tuple[LocateStrategy, ...] = EXACT_LADDER + (PrefixSearch(),)


def locate(
    request: LocateRequest,
    haystack: str,
    *,
    strategies: Sequence[LocateStrategy] = FULL_LADDER,
) -> Match | None:
    """Walk ``strategies`` in order and return the first match, if any."""

    for strategy in strategies:
        match = strategy.resolve(request, haystack)
        if match is not None:
            return match
    LOGGER.debug("No strategy located fragment %r", request.fragment[:40])
    return None


__all__ = [
    "EXACT_LADDER",
    "ExactAtOffset",
    "ExactSearch",
    "FULL_LADDER",
    "LocateRequest",
    "LocateStrategy",
    "Match",
    "PrefixSearch",
    "TrimmedSearch",
    "locate",
]
