"""Headless tests for the proofreading main window."""

from __future__ import annotations

import asyncio
import os
from unittest.mock import MagicMock

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
pytest.importorskip("PySide6.QtWidgets")

from PySide6.QtCore import Qt  # noqa: E402

from quillcheck.detectors.demo import DemoDetector  # noqa: E402
from quillcheck.editor.document_model import InMemoryDocumentStore  # noqa: E402
from quillcheck.editor.qt_surface import QtEditingSurface  # noqa: E402
from quillcheck.events import CorrectionsApplied, EventBus  # noqa: E402
from quillcheck.services.settings import Settings  # noqa: E402
from quillcheck.session import ProofreadingSession  # noqa: E402
from quillcheck.ui.window import ProofreadingWindow, describe_issue  # noqa: E402

from tests.helpers import FailingDetector, make_issue  # noqa: E402

RICH = "<p>Please <b>emial</b> the compay today.</p>"


@pytest.fixture(autouse=True)
def _ensure_qapp(qapp):  # pragma: no cover - pytest-qt provides the fixture
    """Guarantee a running QApplication when PySide6 is installed."""

    return qapp


def _window(detector=None, **kwargs) -> tuple[ProofreadingWindow, ProofreadingSession, QtEditingSurface]:
    surface = QtEditingSurface()
    session = ProofreadingSession(surface, detector or DemoDetector(), Settings(debounce_seconds=30), **kwargs)
    return ProofreadingWindow(session, surface), session, surface


def _analysed(detector=None, **kwargs) -> tuple[ProofreadingWindow, ProofreadingSession, QtEditingSurface]:
    window, session, surface = _window(detector, **kwargs)
    with session.programmatic():
        surface.set_rich(RICH)
    asyncio.run(session.manual_analyze())
    return window, session, surface


def _item_labels(window: ProofreadingWindow) -> list[str]:
    issue_list = window.issue_list
    return [issue_list.item(row).text() for row in range(issue_list.count())]


def test_describe_issue_label() -> None:
    text = "Send teh file."
    issue = make_issue(text, "teh", suggestions=("the",))

    assert describe_issue(issue, text) == "[spelling] teh → the"
    assert describe_issue(issue, None) == "[spelling] ? → the"


def test_issues_updated_fills_issue_list() -> None:
    window, session, _ = _analysed()

    assert _item_labels(window) == [
        "[spelling] emial → email  (Spelling error)",
        "[spelling] compay → company  (Spelling error)",
    ]
    first = window.issue_list.item(0)
    assert first.data(int(Qt.ItemDataRole.UserRole)) == session.issues[0].id
    assert first.toolTip() == session.issues[0].message
    assert window.statusBar().currentMessage() == "2 issue(s) · quality 94 · 5 words"


def test_context_menu_actions_accept_and_ignore() -> None:
    session = MagicMock()
    session.bus = EventBus()
    session.enabled = True
    session.can_save = False
    window = ProofreadingWindow(session, QtEditingSurface())
    issue = make_issue("Send teh file.", "teh", suggestions=("the", "tea"))

    menu = window._build_issue_menu(issue)  # noqa: SLF001 - exec() would block the test
    actions = [action for action in menu.actions() if not action.isSeparator()]

    assert [action.text() for action in actions] == ["Replace with “the”", "Replace with “tea”", "Ignore"]
    actions[1].trigger()
    session.accept.assert_called_once_with(issue.id, "tea")
    actions[-1].trigger()
    session.dismiss.assert_called_once_with(issue.id)


def test_menu_without_suggestions_only_offers_ignore() -> None:
    window, _, _ = _window()
    issue = make_issue("Send teh file.", "teh")

    menu = window._build_issue_menu(issue)  # noqa: SLF001

    assert [action.text() for action in menu.actions()] == ["Ignore"]


def test_accept_all_empties_issue_list() -> None:
    window, session, surface = _analysed()

    window._accept_all_action.trigger()  # noqa: SLF001

    assert window.issue_list.count() == 0
    assert session.issues == ()
    assert surface.get_plain_text() == "Please email the company today."
    assert window.statusBar().currentMessage() == "Applied 2 correction(s)"


def test_analysis_failure_is_shown_in_status_bar() -> None:
    window, session, _ = _analysed(FailingDetector())

    assert session.status == "failed"
    assert window.issue_list.count() == 0
    assert window.statusBar().currentMessage() == "Analysis failed: detector offline"


def test_partial_corrections_are_reported() -> None:
    window, session, _ = _window()

    session.bus.publish(CorrectionsApplied(applied=1, failed=1, issue_ids=("a", "b")))

    message = window.statusBar().currentMessage()
    assert message.startswith("Applied 1 correction(s)")
    assert "some corrections could not be applied" in message


def test_save_action_is_disabled_without_a_store() -> None:
    window, session, _ = _window()

    assert not session.can_save
    assert not window._save_action.isEnabled()  # noqa: SLF001


def test_save_action_enables_once_a_document_is_loaded() -> None:
    store = InMemoryDocumentStore()
    window, session, _ = _window(store=store)
    assert not window._save_action.isEnabled()  # noqa: SLF001

    session.load_document(store.create(RICH, title="Memo"), analyze=False)
    assert window._save_action.isEnabled()  # noqa: SLF001

    window._save_action.trigger()  # noqa: SLF001

    assert window.statusBar().currentMessage() == "Saved Memo"
    assert session.document is not None
    assert not session.document.dirty
