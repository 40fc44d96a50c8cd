"""Apply approved corrections onto rich content without drifting offsets."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..analysis.locate import EXACT_LADDER, LocateRequest, LocateStrategy, Match, locate
from ..analysis.models import CorrectionChange
from ..analysis.projector import project
from ..core.ranges import TextRange
from .rich_map import RichTextMap

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ApplyOutcome:
    """Result of :meth:`CorrectionApplier.apply_one`."""

    rich: str
    applied: bool
    change: CorrectionChange | None = None
    strategy: str | None = None
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class BatchOutcome:
    """Result of :meth:`CorrectionApplier.apply_many`."""

    rich: str
    applied_count: int = 0
    failed_count: int = 0
    outcomes: tuple[ApplyOutcome, ...] = field(default_factory=tuple)

    @property
    def partial(self) -> bool:
        return self.applied_count > 0 and self.failed_count > 0

    @property
    def total(self) -> int:
        return self.applied_count + self.failed_count


class CorrectionApplier:
    """Validates corrections against the current plain text and writes them into markup.

    Failures are reported through :class:`ApplyOutcome`/:class:`BatchOutcome`
    counters; no method here raises for a missing fragment.
    """

    def __init__(self, *, strategies: Sequence[LocateStrategy] = EXACT_LADDER) -> None:
        self._strategies = tuple(strategies)

    def resolve(self, change: CorrectionChange, plain: str) -> Match | None:
        """Find ``change.original_text`` in ``plain``, preferring its recorded offset."""

        if not change.original_text:
            return None
        request = LocateRequest(fragment=change.original_text, hint=change.span)
        return locate(request, plain, strategies=self._strategies)

    def apply_one(self, rich: str, change: CorrectionChange) -> ApplyOutcome:
        mapping = RichTextMap(rich)
        return self._apply(mapping, change)

    def apply_many(self, rich: str, changes: Iterable[CorrectionChange]) -> BatchOutcome:
        """Apply ``changes`` right-to-left, revalidating each against the evolving text."""

        pending = list(changes)
        if not pending:
            return BatchOutcome(rich=rich)
        plain = project(rich)
        valid: list[CorrectionChange] = []
        outcomes: list[ApplyOutcome] = []
        for change in pending:
            if self.resolve(change, plain) is None:
                outcomes.append(ApplyOutcome(rich=rich, applied=False, change=change, reason="fragment_missing"))
            else:
                valid.append(change)
        failed = len(outcomes)
        applied = 0
        current = rich
        # Descending start keeps every not-yet-applied offset valid; ties keep input order.
        for change in sorted(valid, key=lambda item: item.plain_text_start, reverse=True):
            outcome = self.apply_one(current, change)
            outcomes.append(outcome)
            if outcome.applied:
                applied += 1
                current = outcome.rich
            else:
                failed += 1
        if applied == 0:
            current = rich
        LOGGER.debug("Batch correction applied=%s failed=%s", applied, failed)
        return BatchOutcome(rich=current, applied_count=applied, failed_count=failed, outcomes=tuple(outcomes))

    def _apply(self, mapping: RichTextMap, change: CorrectionChange) -> ApplyOutcome:
        match = self.resolve(change, mapping.text)
        if match is None:
            LOGGER.debug("Fragment %r no longer present; skipping correction", change.original_text)
            return ApplyOutcome(rich=mapping.rich, applied=False, change=change, reason="fragment_missing")
        replacement = change.replacement_text
        if match.strategy == "trimmed":
            replacement = replacement.strip()
        updated = mapping.replace(match.span, replacement)
        return ApplyOutcome(rich=updated, applied=True, change=change, strategy=match.strategy)


_DEFAULT_APPLIER = CorrectionApplier()


def apply_one(rich: str, change: CorrectionChange) -> ApplyOutcome:
    return _DEFAULT_APPLIER.apply_one(rich, change)


def apply_many(rich: str, changes: Iterable[CorrectionChange]) -> BatchOutcome:
    return _DEFAULT_APPLIER.apply_many(rich, changes)


def replace_plain_range(rich: str, span: TextRange, replacement: str) -> str:
    """Replace an already-validated plain-text ``span`` in ``rich``."""

    return RichTextMap(rich).replace(span, replacement)


__all__ = [
    "ApplyOutcome",
    "BatchOutcome",
    "CorrectionApplier",
    "apply_many",
    "apply_one",
    "replace_plain_range",
]
