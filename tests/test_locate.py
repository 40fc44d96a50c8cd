"""Tests for the fragment-location strategy ladder."""

from __future__ import annotations

from quillcheck.analysis.locate import (
    EXACT_LADDER,
    FULL_LADDER,
    ExactAtOffset,
    ExactSearch,
    LocateRequest,
    PrefixSearch,
    TrimmedSearch,
    locate,
)
from quillcheck.core.ranges import TextRange


def test_offset_strategy_accepts_matching_slice() -> None:
    match = ExactAtOffset().resolve(LocateRequest("emial", TextRange(7, 12)), "Please emial me")
    assert match is not None
    assert match.span == TextRange(7, 12)
    assert match.strategy == "offset"
    assert match.exact


def test_offset_strategy_rejects_moved_fragment() -> None:
    assert ExactAtOffset().resolve(LocateRequest("emial", TextRange(0, 5)), "Please emial me") is None


def test_offset_strategy_rejects_out_of_bounds_hint() -> None:
    assert ExactAtOffset().resolve(LocateRequest("me", TextRange(20, 22)), "Please emial me") is None


def test_exact_search_prefers_occurrence_nearest_the_hint() -> None:
    text = "teh one and teh two"
    match = ExactSearch().resolve(LocateRequest("teh", TextRange(14, 17)), text)
    assert match is not None
    assert match.span == TextRange(12, 15)


def test_exact_search_without_hint_returns_first_occurrence() -> None:
    match = ExactSearch().resolve(LocateRequest("teh"), "teh one and teh two")
    assert match is not None
    assert match.span == TextRange(0, 3)


def test_trimmed_search_only_runs_for_padded_fragments() -> None:
    assert TrimmedSearch().resolve(LocateRequest("teh"), "fix teh now") is None
    match = TrimmedSearch().resolve(LocateRequest("teh  "), "fix teh now")
    assert match is not None
    assert match.span == TextRange(4, 7)
    assert match.strategy == "trimmed"


def test_prefix_search_is_marked_approximate() -> None:
    match = PrefixSearch().resolve(LocateRequest("recieved", TextRange(3, 11)), "we recieve mail")
    assert match is not None
    assert match.span == TextRange(3, 11)
    assert match.exact is False


def test_prefix_search_ignores_short_fragments() -> None:
    assert PrefixSearch().resolve(LocateRequest("abc"), "abcdef") is None


def test_locate_walks_ladder_in_order() -> None:
    text = "I will reciev it"
    request = LocateRequest("recieve", TextRange(7, 14))
    assert locate(request, text, strategies=EXACT_LADDER) is None
    match = locate(request, text, strategies=FULL_LADDER)
    assert match is not None
    assert match.strategy == "prefix"


def test_locate_returns_none_when_nothing_matches() -> None:
    assert locate(LocateRequest("missing"), "entirely different text") is None


def test_empty_fragment_never_matches() -> None:
    assert locate(LocateRequest("", TextRange(0, 0)), "anything") is None
