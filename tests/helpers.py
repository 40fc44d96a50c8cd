"""Shared test helpers and stub detectors.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Sequence

from quillcheck.analysis.models import DetectionOptions, DetectionResult, Issue, IssueType
from quillcheck.core.ranges import TextRange
from quillcheck.detectors.demo import DemoDetector


def make_issue(
    text: str,
    fragment: str,
    *,
    issue_type: IssueType | str = IssueType.SPELLING,
    suggestions: Sequence[str] = (),
    issue_id: str | None = None,
    occurrence: int = 0,
) -> Issue:
    """Build an issue pointing at the ``occurrence``-th ``fragment`` in ``text``."""

    index = -1
    for _ in range(occurrence + 1):
        index = text.index(fragment, index + 1)
    return Issue(
        id=issue_id or f"{fragment}-{index}",
        type=issue_type,
        position=TextRange(index, index + len(fragment)),
        suggestions=tuple(suggestions),
        message=f"Check '{fragment}'",
    )


def result_of(issues: Iterable[Issue]) -> DetectionResult:
    return DetectionResult(issues=tuple(issues))


class StaticDetector:
    """Returns the same issues for every call and records the requested texts."""

    def __init__(self, issues: Iterable[Issue] = ()) -> None:
        self.issues = tuple(issues)
        self.calls: list[str] = []

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        self.calls.append(text)
        return result_of(self.issues)


class FailingDetector:
    """Raises ``error`` on every call."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or RuntimeError("detector offline")
        self.calls: list[str] = []

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        self.calls.append(text)
        raise self.error


class ControlledDetector:
    """Detector whose calls stay pending until the test resolves them.

    Each call appends ``(text, future)`` to :attr:`calls`; resolving futures in
    any order lets tests reproduce out-of-order network responses.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, asyncio.Future[DetectionResult]]] = []

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        future: asyncio.Future[DetectionResult] = asyncio.get_running_loop().create_future()
        self.calls.append((text, future))
        return await future

    def resolve(self, index: int, result: DetectionResult | None = None) -> None:
        self.calls[index][1].set_result(result or DetectionResult())

    def fail(self, index: int, error: Exception) -> None:
        self.calls[index][1].set_exception(error)


class RenamingDetector:
    """Wraps :class:`DemoDetector` and gives issues fresh ids on every run."""

    def __init__(self) -> None:
        self._inner = DemoDetector()
        self.runs = 0

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        self.runs += 1
        result = await self._inner.detect(text, options)
        renamed = tuple(
            Issue(
                id=f"run{self.runs}-{issue.id}",
                type=issue.type,
                position=issue.position,
                suggestions=issue.suggestions,
                context=issue.context,
                confidence=issue.confidence,
                rule=issue.rule,
                severity=issue.severity,
                message=issue.message,
                short_message=issue.short_message,
            )
            for issue in result.issues
        )
        return DetectionResult(issues=renamed, summary=result.summary, language=result.language)


async def wait_for(predicate, *, timeout: float = 1.0, interval: float = 0.005) -> None:
    """Yield to the loop until ``predicate()`` is true."""

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)
