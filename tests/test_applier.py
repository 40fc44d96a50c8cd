"""Tests for :mod:`quillcheck.corrections.applier`."""

from __future__ import annotations

from quillcheck.analysis.models import CorrectionChange
from quillcheck.corrections.applier import CorrectionApplier, apply_many, apply_one, replace_plain_range
from quillcheck.core.ranges import TextRange


def _change(original: str, replacement: str, start: int, end: int, issue_id: str | None = None) -> CorrectionChange:
    return CorrectionChange(
        original_text=original,
        replacement_text=replacement,
        plain_text_start=start,
        plain_text_end=end,
        issue_id=issue_id,
    )


BATCH_RICH = "<p><b>Hello</b> there, please <i>emial</i> me</p>"
BATCH_EXPECTED = "<p><b>Hello,</b> there, please <i>email</i> me</p>"


class TestApplyOne:
    def test_applies_at_recorded_offset(self) -> None:
        outcome = apply_one("<p>Please <i>emial</i> me</p>", _change("emial", "email", 7, 12))
        assert outcome.applied
        assert outcome.strategy == "offset"
        assert outcome.rich == "<p>Please <i>email</i> me</p>"

    def test_finds_fragment_after_it_moved(self) -> None:
        outcome = apply_one("<p>Hi, please emial me</p>", _change("emial", "email", 7, 12))
        assert outcome.applied
        assert outcome.strategy == "exact"
        assert outcome.rich == "<p>Hi, please email me</p>"

    def test_prefers_nearest_occurrence(self) -> None:
        outcome = apply_one("<p>teh one and teh two</p>", _change("teh", "the", 14, 17))
        assert outcome.rich == "<p>teh one and the two</p>"

    def test_trimmed_match_strips_replacement(self) -> None:
        outcome = apply_one("<p>fix teh now</p>", _change("teh  ", "the  ", 4, 9))
        assert outcome.applied
        assert outcome.strategy == "trimmed"
        assert outcome.rich == "<p>fix the now</p>"

    def test_missing_fragment_leaves_content_untouched(self) -> None:
        rich = "<p>Nothing to fix here</p>"
        outcome = apply_one(rich, _change("emial", "email", 0, 5))
        assert not outcome.applied
        assert outcome.reason == "fragment_missing"
        assert outcome.rich == rich

    def test_approximate_prefix_match_is_not_applied(self) -> None:
        rich = "<p>send emial address</p>"
        outcome = apply_one(rich, _change("emial adress", "email address", 5, 17))
        assert not outcome.applied
        assert outcome.rich == rich

    def test_empty_original_text_is_rejected(self) -> None:
        rich = "<p>Hello</p>"
        outcome = apply_one(rich, _change("", "x", 0, 0))
        assert not outcome.applied
        assert outcome.rich == rich


class TestApplyMany:
    def test_batch_result_is_independent_of_input_order(self) -> None:
        first = _change("emial", "email", 20, 25)
        second = _change("Hello", "Hello,", 0, 5)
        forward = apply_many(BATCH_RICH, [first, second])
        backward = apply_many(BATCH_RICH, [second, first])
        assert forward.rich == backward.rich == BATCH_EXPECTED
        assert forward.applied_count == backward.applied_count == 2
        assert forward.failed_count == 0
        assert not forward.partial

    def test_overlapping_changes_report_partial_failure(self) -> None:
        rich = "<p>I saw teh cat today</p>"
        batch = apply_many(
            rich,
            [_change("teh cat", "the cat", 6, 13, "a"), _change("teh", "the", 6, 9, "b")],
        )
        assert batch.applied_count == 1
        assert batch.failed_count == 1
        assert batch.partial
        assert batch.rich == "<p>I saw the cat today</p>"

    def test_stale_changes_are_filtered_before_applying(self) -> None:
        rich = "<p>Please emial me</p>"
        batch = apply_many(rich, [_change("compay", "company", 0, 6), _change("emial", "email", 7, 12)])
        assert batch.applied_count == 1
        assert batch.failed_count == 1
        assert batch.rich == "<p>Please email me</p>"
        reasons = [outcome.reason for outcome in batch.outcomes if not outcome.applied]
        assert reasons == ["fragment_missing"]

    def test_no_applied_changes_returns_original_content(self) -> None:
        rich = "<p>Please emial me</p>"
        batch = apply_many(rich, [_change("compay", "company", 0, 6)])
        assert batch.applied_count == 0
        assert batch.failed_count == 1
        assert batch.rich is rich

    def test_empty_batch_is_a_no_op(self) -> None:
        batch = CorrectionApplier().apply_many("<p>x</p>", [])
        assert batch.rich == "<p>x</p>"
        assert batch.total == 0


def test_replace_plain_range_uses_rich_map() -> None:
    assert replace_plain_range("<p><b>Hello</b></p>", TextRange(0, 5), "Howdy") == "<p><b>Howdy</b></p>"


def test_applier_with_custom_ladder_can_use_prefix_matches() -> None:
    from quillcheck.analysis.locate import FULL_LADDER

    applier = CorrectionApplier(strategies=FULL_LADDER)
    outcome = applier.apply_one("<p>send emial address</p>", _change("emial adress", "email address", 5, 17))
    assert outcome.applied
    assert outcome.strategy == "prefix"
