"""Issue detector backends and the factory that selects one from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import DetectorError, IssueDetector
from .demo import DemoDetector

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..services.settings import Settings


def build_detector(settings: "Settings") -> IssueDetector:
    """Instantiate the backend named by ``settings.detector_backend``."""

    backend = (settings.detector_backend or "demo").strip().lower()
    if backend == "demo":
        return DemoDetector()
    if backend == "languagetool":
        from .languagetool import LanguageToolDetector, LanguageToolSettings

        return LanguageToolDetector(
            LanguageToolSettings(
                url=settings.languagetool_url,
                request_timeout=settings.request_timeout,
                max_retries=settings.max_retries,
                retry_min_seconds=settings.retry_min_seconds,
                retry_max_seconds=settings.retry_max_seconds,
            )
        )
    if backend == "openai":
        from .openai_detector import ClientSettings, OpenAIDetector

        if not settings.api_key:
            raise DetectorError("An API key is required for the openai backend", reason="missing_api_key")
        return OpenAIDetector(
            ClientSettings(
                base_url=settings.base_url,
                api_key=settings.api_key,
                model=settings.model,
                organization=settings.organization,
                request_timeout=settings.request_timeout,
                max_retries=settings.max_retries,
                retry_min_seconds=settings.retry_min_seconds,
                retry_max_seconds=settings.retry_max_seconds,
                temperature=settings.temperature,
                default_headers=settings.default_headers or None,
                debug_logging=settings.debug_logging,
            )
        )
    raise DetectorError(f"Unknown detector backend: {settings.detector_backend!r}", reason="unknown_backend")


__all__ = ["DemoDetector", "DetectorError", "IssueDetector", "build_detector"]
