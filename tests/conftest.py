"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from quillcheck.editor.surface import HtmlEditingSurface
from quillcheck.services import telemetry
from quillcheck.services.settings import Settings


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in list(os.environ):
        if name.startswith("QUILLCHECK_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("QUILLCHECK_SETTINGS_DIR", str(tmp_path / "settings"))
    monkeypatch.setenv("QUILLCHECK_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def settings() -> Settings:
    return Settings(debounce_seconds=0.01, min_length=10)


@pytest.fixture
def surface() -> HtmlEditingSurface:
    return HtmlEditingSurface()


@pytest.fixture
def telemetry_sink():
    sink = telemetry.InMemoryTelemetrySink()
    telemetry.attach_sink(sink)
    try:
        yield sink
    finally:
        telemetry.detach_sink(sink)
