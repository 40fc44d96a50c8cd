"""Issue detector that asks an OpenAI-compatible chat model to proofread text."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

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
from .base import DetectorError, build_result, filter_enabled
from .prompts import ISSUE_END, ISSUE_START, system_prompt, user_prompt

LOGGER = logging.getLogger(__name__)

CONTEXT_RADIUS = 20
DEFAULT_CONFIDENCE = 0.8
SHORT_MESSAGE_CHARS = 50


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the proofreading client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float = 0.2
    max_tokens: int = 2_000
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@dataclass(slots=True)
class _IssueBlock:
    type: str = "grammar"
    message: str = ""
    fragment: str = ""
    correction: str = ""
    explanation: str = ""
    confidence: float = DEFAULT_CONFIDENCE


class OpenAIDetector:
    """Proofreads text with a chat completion and parses ``ISSUE_START`` blocks."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        messages = [
            {"role": "system", "content": system_prompt(options)},
            {"role": "user", "content": user_prompt(text)},
        ]
        LOGGER.debug("Requesting proofreading from %s for %s chars", self._settings.model, len(text))
        try:
            content = await self._complete(messages)
        except (APIError, APIConnectionError, httpx.HTTPError) as exc:
            status = getattr(exc, "status_code", None)
            raise DetectorError(
                "Failed to analyze text with the language model",
                reason="api_error",
                status_code=status,
            ) from exc
        if self._settings.debug_logging:
            LOGGER.debug("Raw proofreading response:\n%s", content)
        issues = parse_issue_blocks(content, text)
        return build_result(filter_enabled(issues, options), text=text, language=options.language)

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.chat.completions.create(
                    model=self._settings.model,
                    messages=messages,  # type: ignore[arg-type]
                    temperature=self._settings.temperature,
                    max_tokens=self._settings.max_tokens,
                )
                choices = getattr(response, "choices", None) or []
                if not choices:
                    return ""
                return choices[0].message.content or ""
        return ""  # pragma: no cover - AsyncRetrying always yields at least once

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIStatusError,
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def parse_issue_blocks(content: str | None, text: str) -> list[Issue]:
    """Turn ``ISSUE_START``/``ISSUE_END`` blocks into issues located in ``text``.

    Blocks whose fragment equals the correction, or whose fragment does not
    occur in ``text``, are dropped. Repeated fragments claim successive
    occurrences.
    """

    if not content:
        return []
    issues: list[Issue] = []
    claimed: set[int] = set()
    for index, raw in enumerate(content.split(ISSUE_START)[1:], start=1):
        block = _parse_block(raw.split(ISSUE_END, 1)[0])
        if not block.message or not block.fragment or not block.correction:
            LOGGER.debug("Skipping incomplete issue block %s", index)
            continue
        if block.fragment == block.correction:
            LOGGER.debug("Skipping self-referential suggestion in block %s", index)
            continue
        start = _claim_occurrence(text, block.fragment, claimed)
        if start < 0:
            LOGGER.debug("Fragment %r from block %s not found in text", block.fragment, index)
            continue
        span = TextRange(start, start + len(block.fragment))
        issue_type = IssueType.coerce(block.type, default=IssueType.GRAMMAR)
        message = block.message
        short = message if len(message) <= SHORT_MESSAGE_CHARS else message[: SHORT_MESSAGE_CHARS - 3] + "..."
        issues.append(
            Issue(
                id=f"ai-error-{index}",
                type=issue_type,
                severity=Severity.SUGGESTION if issue_type is IssueType.STYLE else Severity.ERROR,
                position=span,
                message=block.explanation or message,
                short_message=short,
                suggestions=(block.correction,),
                confidence=block.confidence,
                context=IssueContext.around(text, span, radius=CONTEXT_RADIUS),
                rule=RuleInfo(
                    id=f"ai-{issue_type.value}-rule",
                    description=block.explanation or f"AI-detected {issue_type.value} issue",
                    category=issue_type.value.upper(),
                ),
            )
        )
    return issues


_FIELDS: dict[str, str] = {
    "Type:": "type",
    "Message:": "message",
    "OriginalFragment:": "fragment",
    "SuggestedCorrection:": "correction",
    "Explanation:": "explanation",
    "Confidence:": "confidence",
}


def _parse_block(raw: str) -> _IssueBlock:
    values: dict[str, Any] = {}
    for line in raw.splitlines():
        line = line.strip()
        for prefix, name in _FIELDS.items():
            if line.startswith(prefix):
                values[name] = line[len(prefix) :].strip()
                break
    block = _IssueBlock(
        type=str(values.get("type", "grammar")).lower(),
        message=values.get("message", ""),
        fragment=_unquote(values.get("fragment", "")),
        correction=_unquote(values.get("correction", "")),
        explanation=values.get("explanation", ""),
    )
    try:
        confidence = float(values.get("confidence", DEFAULT_CONFIDENCE))
    except ValueError:
        confidence = DEFAULT_CONFIDENCE
    block.confidence = confidence or DEFAULT_CONFIDENCE
    return block


def _unquote(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _claim_occurrence(text: str, fragment: str, claimed: set[int]) -> int:
    start = text.find(fragment)
    while start >= 0 and start in claimed:
        start = text.find(fragment, start + 1)
    if start < 0:
        start = text.find(fragment)
    if start >= 0:
        claimed.add(start)
    return start


__all__ = ["ClientSettings", "OpenAIDetector", "parse_issue_blocks"]
