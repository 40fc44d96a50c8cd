"""Dataclasses shared across the analysis, correction, and rendering packages."""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from ..core.ranges import TextRange

MAX_SUGGESTIONS = 5
READING_WORDS_PER_MINUTE = 200


def _default_timestamp() -> float:
    return time.time()


class IssueType(str, Enum):
    """Category of a detected writing issue."""

    GRAMMAR = "grammar"
    SPELLING = "spelling"
    STYLE = "style"

    @classmethod
    def coerce(cls, value: Any, *, default: IssueType | None = None) -> IssueType:
        if isinstance(value, IssueType):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        if default is not None:
            return default
        raise ValueError(f"Unknown issue type: {value!r}")


class Severity(str, Enum):
    """How strongly an issue should be surfaced."""

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"

    @classmethod
    def coerce(cls, value: Any, *, default: Severity | None = None) -> Severity:
        if isinstance(value, Severity):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        if default is not None:
            return default
        raise ValueError(f"Unknown severity: {value!r}")


@dataclass(slots=True, frozen=True)
class IssueContext:
    """Snippet of text surrounding an issue with local highlight offsets."""

    text: str = ""
    highlight_start: int = 0
    highlight_end: int = 0

    @classmethod
    def around(cls, text: str, span: TextRange, *, radius: int) -> IssueContext:
        """Build a context window of ``radius`` code units on each side of ``span``."""

        start = max(0, span.start - radius)
        end = min(len(text), span.end + radius)
        return cls(
            text=text[start:end],
            highlight_start=span.start - start,
            highlight_end=span.end - start,
        )


@dataclass(slots=True, frozen=True)
class RuleInfo:
    """Detector rule metadata attached to an issue."""

    id: str = ""
    description: str = ""
    category: str = ""


@dataclass(slots=True, frozen=True)
class Issue:
    """A single grammar, spelling, or style problem reported by a detector.

    ``id`` is produced by the detector and is *not* stable across runs; use
    :func:`quillcheck.analysis.fingerprints.fingerprint` for cross-run identity.
    """

    id: str
    type: IssueType
    position: TextRange
    suggestions: tuple[str, ...] = ()
    context: IssueContext = field(default_factory=IssueContext)
    confidence: float = 1.0
    rule: RuleInfo = field(default_factory=RuleInfo)
    severity: Severity = Severity.ERROR
    message: str = ""
    short_message: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", IssueType.coerce(self.type))
        object.__setattr__(self, "severity", Severity.coerce(self.severity, default=Severity.WARNING))
        object.__setattr__(self, "position", TextRange.from_value(self.position))
        object.__setattr__(self, "suggestions", tuple(str(item) for item in self.suggestions)[:MAX_SUGGESTIONS])
        confidence = float(self.confidence)
        if math.isnan(confidence):
            confidence = 0.0
        object.__setattr__(self, "confidence", min(1.0, max(0.0, confidence)))

    @property
    def start(self) -> int:
        return self.position.start

    @property
    def end(self) -> int:
        return self.position.end

    @property
    def primary_suggestion(self) -> str | None:
        return self.suggestions[0] if self.suggestions else None

    def fragment(self, text: str) -> str:
        """Return the slice of ``text`` this issue points at."""

        return self.position.slice(text)

    def with_position(self, position: TextRange) -> Issue:
        return replace(self, position=position)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> Issue:
        """Build an issue from a detector payload (snake_case or camelCase keys)."""

        position = payload.get("position") or {}
        context_payload = payload.get("context") or payload.get("context_window") or {}
        if isinstance(context_payload, str):
            context = IssueContext(text=context_payload)
        else:
            context = IssueContext(
                text=str(context_payload.get("text", "")),
                highlight_start=int(
                    context_payload.get("highlight_start", context_payload.get("highlightStart", 0)) or 0
                ),
                highlight_end=int(
                    context_payload.get("highlight_end", context_payload.get("highlightEnd", 0)) or 0
                ),
            )
        rule_payload = payload.get("rule") or payload.get("rule_info") or payload.get("ruleInfo") or {}
        rule = RuleInfo(
            id=str(rule_payload.get("id", "")),
            description=str(rule_payload.get("description", "")),
            category=str(rule_payload.get("category", "")),
        )
        suggestions = payload.get("suggestions") or ()
        return cls(
            id=str(payload.get("id", "")),
            type=IssueType.coerce(payload.get("type")),
            position=TextRange.from_value(position),
            suggestions=tuple(suggestions),
            context=context,
            confidence=float(payload.get("confidence", 1.0)),
            rule=rule,
            severity=Severity.coerce(payload.get("severity"), default=Severity.WARNING),
            message=str(payload.get("message", "")),
            short_message=str(payload.get("short_message", payload.get("shortMessage", ""))),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "position": self.position.to_dict(),
            "message": self.message,
            "short_message": self.short_message,
            "suggestions": list(self.suggestions),
            "confidence": self.confidence,
            "rule": {"id": self.rule.id, "description": self.rule.description, "category": self.rule.category},
            "context": {
                "text": self.context.text,
                "highlight_start": self.context.highlight_start,
                "highlight_end": self.context.highlight_end,
            },
        }


@dataclass(slots=True, frozen=True)
class DetectionOptions:
    """Feature toggles forwarded to the issue detector."""

    enable_grammar: bool = True
    enable_spelling: bool = True
    enable_style: bool = True
    language: str = "en-US"
    max_suggestions: int = MAX_SUGGESTIONS

    def allows(self, issue_type: IssueType) -> bool:
        if issue_type is IssueType.GRAMMAR:
            return self.enable_grammar
        if issue_type is IssueType.SPELLING:
            return self.enable_spelling
        return self.enable_style

    @property
    def any_enabled(self) -> bool:
        return self.enable_grammar or self.enable_spelling or self.enable_style


@dataclass(slots=True, frozen=True)
class SummaryStats:
    """Aggregate counters describing an analysis result."""

    total_errors: int = 0
    grammar_errors: int = 0
    spelling_errors: int = 0
    style_issues: int = 0
    quality_score: int = 100
    word_count: int = 0
    sentence_count: int = 0
    paragraph_count: int = 0
    reading_time: int = 0

    @classmethod
    def from_issues(cls, issues: Iterable[Issue], *, text: str = "") -> SummaryStats:
        """Compute counts and the quality score for ``issues``."""

        grammar = spelling = style = 0
        for issue in issues:
            if issue.type is IssueType.GRAMMAR:
                grammar += 1
            elif issue.type is IssueType.SPELLING:
                spelling += 1
            else:
                style += 1
        words = text.split()
        sentences = [chunk for chunk in _SENTENCE_SPLIT.split(text) if chunk.strip()]
        paragraphs = [chunk for chunk in _PARAGRAPH_SPLIT.split(text) if chunk.strip()]
        return cls(
            total_errors=grammar + spelling + style,
            grammar_errors=grammar,
            spelling_errors=spelling,
            style_issues=style,
            quality_score=max(0, 100 - grammar * 5 - spelling * 3 - style),
            word_count=len(words),
            sentence_count=len(sentences),
            paragraph_count=len(paragraphs),
            reading_time=math.ceil(len(words) / READING_WORDS_PER_MINUTE),
        )

    def recount(self, issues: Sequence[Issue]) -> SummaryStats:
        """Return a copy whose issue counters reflect ``issues`` only."""

        counted = SummaryStats.from_issues(issues)
        return replace(
            self,
            total_errors=counted.total_errors,
            grammar_errors=counted.grammar_errors,
            spelling_errors=counted.spelling_errors,
            style_issues=counted.style_issues,
            quality_score=counted.quality_score,
        )


@dataclass(slots=True, frozen=True)
class DetectionResult:
    """Payload returned by an issue detector."""

    issues: tuple[Issue, ...] = ()
    summary: SummaryStats | None = None
    language: str = ""
    generated_at: float = field(default_factory=_default_timestamp)


@dataclass(slots=True, frozen=True)
class CorrectionChange:
    """A single proposed mutation, validated against the current plain text."""

    original_text: str
    replacement_text: str
    plain_text_start: int
    plain_text_end: int
    issue_id: str | None = None

    @property
    def span(self) -> TextRange:
        return TextRange(self.plain_text_start, self.plain_text_end)

    @classmethod
    def from_issue(cls, issue: Issue, text: str, *, suggestion: str | None = None) -> CorrectionChange:
        """Capture the fragment ``issue`` points at in ``text`` together with a replacement."""

        replacement = suggestion if suggestion is not None else issue.primary_suggestion
        if replacement is None:
            raise ValueError(f"Issue {issue.id!r} has no suggestion to apply")
        return cls(
            original_text=issue.fragment(text),
            replacement_text=replacement,
            plain_text_start=issue.start,
            plain_text_end=issue.end,
            issue_id=issue.id,
        )


_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


__all__ = [
    "CorrectionChange",
    "DetectionOptions",
    "DetectionResult",
    "Issue",
    "IssueContext",
    "IssueType",
    "MAX_SUGGESTIONS",
    "RuleInfo",
    "Severity",
    "SummaryStats",
]
