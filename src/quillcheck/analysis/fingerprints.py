"""Cross-run issue identity and the session-scoped dismissed set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from .models import Issue, IssueType

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTEXT_RADIUS = 10
DEFAULT_LENGTH_RATIO = 0.2
DEFAULT_DIFF_RATIO = 0.3


@dataclass(slots=True, frozen=True)
class IssueFingerprint:
    """Derived key recognising "the same issue" across two analyses."""

    type: IssueType
    start: int
    length: int
    context: str

    def key(self) -> str:
        return f"{self.type.value}-{self.start}-{self.length}-{self.context}"


def fingerprint(issue: Issue, text: str, *, radius: int = DEFAULT_CONTEXT_RADIUS) -> IssueFingerprint:
    """Build the fingerprint of ``issue`` using ``radius`` code units of ``text`` on each side."""

    start = issue.start
    end = issue.end
    window = text[max(0, start - radius) : min(len(text), end + radius)]
    return IssueFingerprint(type=issue.type, start=start, length=end - start, context=window)


def has_significant_change(
    old_text: str,
    new_text: str,
    *,
    length_ratio: float = DEFAULT_LENGTH_RATIO,
    diff_ratio: float = DEFAULT_DIFF_RATIO,
) -> bool:
    """Return ``True`` when ``new_text`` differs enough from ``old_text`` to distrust fingerprints.

    The length rule compares the absolute length delta against the longer text;
    the diff rule counts mismatched characters over the overlapping prefix only.
    """

    if old_text == new_text:
        return False
    longer = max(len(old_text), len(new_text))
    if longer == 0:
        return False
    if abs(len(old_text) - len(new_text)) > longer * length_ratio:
        return True
    overlap = min(len(old_text), len(new_text))
    mismatches = sum(1 for index in range(overlap) if old_text[index] != new_text[index])
    return mismatches > longer * diff_ratio


class IssueFingerprintTracker:
    """Remembers dismissed fingerprints for the lifetime of an editing session.

    Entries are never expired one by one; the set only grows via :meth:`dismiss`
    or is cleared wholesale by :meth:`clear` / a significant :meth:`observe`.
    """

    def __init__(
        self,
        *,
        radius: int = DEFAULT_CONTEXT_RADIUS,
        length_ratio: float = DEFAULT_LENGTH_RATIO,
        diff_ratio: float = DEFAULT_DIFF_RATIO,
    ) -> None:
        self._radius = max(0, int(radius))
        self._length_ratio = length_ratio
        self._diff_ratio = diff_ratio
        self._dismissed: set[IssueFingerprint] = set()
        self._last_text: str | None = None

    def __len__(self) -> int:
        return len(self._dismissed)

    def __contains__(self, value: object) -> bool:
        return value in self._dismissed

    @property
    def last_text(self) -> str | None:
        return self._last_text

    def fingerprint(self, issue: Issue, text: str) -> IssueFingerprint:
        return fingerprint(issue, text, radius=self._radius)

    def has_significant_change(self, old_text: str, new_text: str) -> bool:
        return has_significant_change(
            old_text,
            new_text,
            length_ratio=self._length_ratio,
            diff_ratio=self._diff_ratio,
        )

    def dismiss(self, issue: Issue, text: str) -> IssueFingerprint:
        key = self.fingerprint(issue, text)
        self._dismissed.add(key)
        LOGGER.debug("Dismissed issue %s (%s)", issue.id, key.key())
        return key

    def dismiss_many(self, issues: Iterable[Issue], text: str) -> int:
        count = 0
        for issue in issues:
            self.dismiss(issue, text)
            count += 1
        return count

    def is_dismissed(self, issue: Issue, text: str) -> bool:
        return self.fingerprint(issue, text) in self._dismissed

    def filter(self, issues: Sequence[Issue], text: str) -> list[Issue]:
        """Return ``issues`` minus the ones whose fingerprint was dismissed."""

        if not self._dismissed:
            return list(issues)
        return [issue for issue in issues if self.fingerprint(issue, text) not in self._dismissed]

    def observe(self, text: str) -> bool:
        """Record ``text`` as the latest analysed text; clear dismissals after a rewrite.

        Returns ``True`` when the dismissed set was cleared.
        """

        previous = self._last_text
        self._last_text = text
        if previous is None or not self._dismissed:
            return False
        if not self.has_significant_change(previous, text):
            return False
        LOGGER.debug("Significant text change detected; clearing %s dismissed issue(s)", len(self._dismissed))
        self._dismissed.clear()
        return True

    def clear(self) -> None:
        self._dismissed.clear()
        self._last_text = None


__all__ = [
    "IssueFingerprint",
    "IssueFingerprintTracker",
    "fingerprint",
    "has_significant_change",
]
