"""Shared detector protocol, error type, and result helpers."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Protocol, Sequence

from ..analysis.models import DetectionOptions, DetectionResult, Issue, IssueType, Severity, SummaryStats

LOGGER = logging.getLogger(__name__)


class IssueDetector(Protocol):
    """Opaque oracle turning plain text into ranked issues."""

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:  # pragma: no cover - protocol
        ...


class DetectorError(RuntimeError):
    """Raised when a detector backend cannot produce a result."""

    def __init__(self, message: str, *, reason: str = "detector_error", status_code: int | None = None) -> None:
        super().__init__(message)
        self.reason = reason
        self.status_code = status_code


def categorize(issue_type: str, category_id: str = "") -> IssueType:
    """Map a backend rule type/category pair onto :class:`IssueType`."""

    issue_type = (issue_type or "").lower()
    category_id = (category_id or "").lower()
    if "misspelling" in issue_type or "typo" in category_id:
        return IssueType.SPELLING
    if "grammar" in issue_type or "grammar" in category_id:
        return IssueType.GRAMMAR
    return IssueType.STYLE


def severity_for(issue_type: str) -> Severity:
    issue_type = (issue_type or "").lower()
    if "misspelling" in issue_type or "grammar" in issue_type:
        return Severity.ERROR
    if "style" in issue_type or "hint" in issue_type:
        return Severity.SUGGESTION
    return Severity.WARNING


def filter_enabled(issues: Iterable[Issue], options: DetectionOptions) -> list[Issue]:
    """Drop issues whose category is switched off and trim suggestion lists.

    Suggestions beyond ``options.max_suggestions`` are discarded, keeping the
    detector's ranking.
    """

    limit = max(1, options.max_suggestions)
    kept: list[Issue] = []
    for issue in issues:
        if not options.allows(issue.type):
            continue
        if len(issue.suggestions) > limit:
            issue = replace(issue, suggestions=issue.suggestions[:limit])
        kept.append(issue)
    return kept


def build_result(issues: Sequence[Issue], *, text: str, language: str) -> DetectionResult:
    ordered = sorted(issues, key=lambda issue: (issue.start, issue.end))
    return DetectionResult(
        issues=tuple(ordered),
        summary=SummaryStats.from_issues(ordered, text=text),
        language=language,
    )


__all__ = [
    "DetectorError",
    "IssueDetector",
    "build_result",
    "categorize",
    "filter_enabled",
    "severity_for",
]
