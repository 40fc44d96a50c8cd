"""Issue detector backed by a LanguageTool ``/v2/check`` endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..analysis.models import (
    DetectionOptions,
    DetectionResult,
    Issue,
    IssueContext,
    RuleInfo,
)
from ..core.ranges import TextRange, codepoint_offset
from .base import DetectorError, build_result, categorize, filter_enabled, severity_for

LOGGER = logging.getLogger(__name__)

DEFAULT_LANGUAGETOOL_URL = "https://api.languagetool.org/v2/check"


@dataclass(slots=True)
class LanguageToolSettings:
    """Connection parameters for the LanguageTool backend."""

    url: str = DEFAULT_LANGUAGETOOL_URL
    request_timeout: float | None = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"LanguageTool returned {response.status_code}")
        self.response = response


class LanguageToolDetector:
    """Posts plain text to LanguageTool and normalises its matches into issues."""

    def __init__(
        self,
        settings: LanguageToolSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or LanguageToolSettings()
        self._client = client or httpx.AsyncClient(timeout=self._settings.request_timeout)
        self._owns_client = client is None

    @property
    def settings(self) -> LanguageToolSettings:
        return self._settings

    async def detect(self, text: str, options: DetectionOptions) -> DetectionResult:
        form = {"text": text, "language": options.language, "enabledOnly": "false"}
        LOGGER.debug("Checking %s chars via %s", len(text), self._settings.url)
        try:
            response = await self._post(form)
        except _RetryableStatus as exc:
            raise DetectorError(
                f"LanguageTool API error: {exc.response.status_code} {exc.response.reason_phrase}",
                reason="http_status",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise DetectorError("Failed to analyze text with LanguageTool", reason="transport") from exc
        if response.status_code >= 400:
            raise DetectorError(
                f"LanguageTool API error: {response.status_code} {response.reason_phrase}",
                reason="http_status",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise DetectorError("LanguageTool returned invalid JSON", reason="invalid_payload") from exc
        matches = payload.get("matches") or []
        issues = [self._to_issue(match, index, text) for index, match in enumerate(matches)]
        language = str((payload.get("language") or {}).get("code") or options.language)
        return build_result(filter_enabled(issues, options), text=text, language=language)

    async def _post(self, form: Mapping[str, str]) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.post(self._settings.url, data=dict(form))
                if response.status_code == 429 or response.status_code >= 500:
                    raise _RetryableStatus(response)
                return response
        raise DetectorError("LanguageTool retry loop exited without a response")  # pragma: no cover

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type((_RetryableStatus, httpx.TransportError)),
        )

    @staticmethod
    def _to_issue(match: Mapping[str, Any], index: int, text: str) -> Issue:
        """Normalise one match; LanguageTool offsets count UTF-16 code units."""

        rule = match.get("rule") or {}
        category = rule.get("category") or {}
        rule_type = str(rule.get("issueType", ""))
        units = max(0, int(match.get("offset", 0)))
        start = codepoint_offset(text, units)
        end = codepoint_offset(text, units + max(0, int(match.get("length", 0))))
        context = match.get("context") or {}
        context_text = str(context.get("text", ""))
        context_units = max(0, int(context.get("offset", 0)))
        replacements = match.get("replacements") or []
        return Issue(
            id=f"error_{index}_{rule.get('id', 'unknown')}",
            type=categorize(rule_type, str(category.get("id", ""))),
            severity=severity_for(rule_type),
            position=TextRange(start, end),
            message=str(match.get("message", "")),
            short_message=str(match.get("shortMessage", "")),
            suggestions=tuple(str(item.get("value", "")) for item in replacements),
            rule=RuleInfo(
                id=str(rule.get("id", "")),
                description=str(rule.get("description", "")),
                category=str(category.get("name", "")),
            ),
            context=IssueContext(
                text=context_text,
                highlight_start=codepoint_offset(context_text, context_units),
                highlight_end=codepoint_offset(context_text, context_units + max(0, int(context.get("length", 0)))),
            ),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["DEFAULT_LANGUAGETOOL_URL", "LanguageToolDetector", "LanguageToolSettings"]
