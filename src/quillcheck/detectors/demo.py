"""Deterministic offline detector used for demos and tests."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from ..analysis.models import (
    DetectionOptions,
    DetectionResult,
    Issue,
    IssueContext,
    IssueType,
    RuleInfo,
    Severity,
)
from ..core.ranges import TextRange
from .base import build_result, filter_enabled

LOGGER = logging.getLogger(__name__)

CONTEXT_RADIUS = 10


@dataclass(slots=True, frozen=True)
class DemoRule:
    """A regex-driven rule; ``group`` selects the highlighted part of the match."""

    id: str
    pattern: re.Pattern[str]
    type: IssueType
    severity: Severity
    message: str
    short_message: str
    suggestions: tuple[str, ...]
    confidence: float = 0.9
    group: int = 0


def _rule(
    rule_id: str,
    pattern: str,
    issue_type: IssueType,
    message: str,
    short_message: str,
    suggestions: tuple[str, ...],
    *,
    severity: Severity = Severity.ERROR,
    confidence: float = 0.9,
    group: int = 0,
) -> DemoRule:
    return DemoRule(
        id=rule_id,
        pattern=re.compile(pattern, re.IGNORECASE),
        type=issue_type,
        severity=severity,
        message=message,
        short_message=short_message,
        suggestions=suggestions,
        confidence=confidence,
        group=group,
    )


DEFAULT_RULES: tuple[DemoRule, ...] = (
    _rule(
        "SUBJECT_VERB_DISAGREEMENT",
        r"\bthis are\b",
        IssueType.GRAMMAR,
        'Subject-verb disagreement. "This" is singular, so use "is" instead of "are".',
        "Subject-verb disagreement",
        ("this is", "these are"),
        confidence=0.95,
    ),
    _rule(
        "SUBJECT_VERB_SENTENCE",
        r"\bsentence (have)\b",
        IssueType.GRAMMAR,
        'Subject-verb disagreement. "Sentence" is singular and requires "has".',
        "Subject-verb disagreement",
        ("has",),
        confidence=0.92,
        group=1,
    ),
    _rule(
        "SPELLING_TEH",
        r"\bteh\b",
        IssueType.SPELLING,
        "Possible spelling mistake found.",
        "Spelling error",
        ("the", "tea", "ten"),
    ),
    _rule(
        "SPELLING_GRAMMER",
        r"\bgrammer\b",
        IssueType.SPELLING,
        'Spelling error: "grammer" should be "grammar".',
        "Spelling error",
        ("grammar",),
        confidence=0.98,
    ),
    _rule(
        "SPELLING_EMIAL",
        r"\bemial\b",
        IssueType.SPELLING,
        'Spelling error: "emial" should be "email".',
        "Spelling error",
        ("email",),
    ),
    _rule(
        "SPELLING_COMPAY",
        r"\bcompay\b",
        IssueType.SPELLING,
        'Spelling error: "compay" should be "company".',
        "Spelling error",
        ("company",),
    ),
    _rule(
        "SPELLING_RECIEVE",
        r"\brecieve\b",
        IssueType.SPELLING,
        '"i" before "e" except after "c".',
        "Spelling error",
        ("receive",),
    ),
    _rule(
        "REDUNDANT_INTENSIFIERS",
        r"\bvery very\b",
        IssueType.STYLE,
        "Consider avoiding redundant intensifiers for clearer writing.",
        "Redundant words",
        ("very", "extremely"),
        severity=Severity.SUGGESTION,
        confidence=0.75,
    ),
)


def _match_case(template: str, suggestion: str) -> str:
    if template[:1].isupper() and suggestion:
        return suggestion[0].upper() + suggestion[1:]
    return suggestion


class DemoDetector:
    """Pattern-based detector with no network access and fully repeatable output."""

    def __init__(self, rules: tuple[DemoRule, ...] = DEFAULT_RULES, *, delay_seconds: float = 0.0) -> None:
        self._rules = rules
        self._delay = max(0.0, delay_seconds)

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        if self._delay:
            await asyncio.sleep(self._delay)
        issues: list[Issue] = []
        for rule in self._rules:
            for count, match in enumerate(rule.pattern.finditer(text), start=1):
                start, end = match.span(rule.group)
                span = TextRange(start, end)
                fragment = text[start:end]
                issues.append(
                    Issue(
                        id=f"demo-{rule.id.lower()}-{count}",
                        type=rule.type,
                        severity=rule.severity,
                        position=span,
                        message=rule.message,
                        short_message=rule.short_message,
                        suggestions=tuple(_match_case(fragment, item) for item in rule.suggestions),
                        confidence=rule.confidence,
                        context=IssueContext.around(text, span, radius=CONTEXT_RADIUS),
                        rule=RuleInfo(id=rule.id, description=rule.short_message, category=rule.type.value.upper()),
                    )
                )
        LOGGER.debug("Demo detector produced %s issue(s)", len(issues))
        return build_result(filter_enabled(issues, options), text=text, language=options.language)


__all__ = ["DEFAULT_RULES", "DemoDetector", "DemoRule"]
