"""Main window for the QuillCheck desktop editor."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QDockWidget, QListWidget, QListWidgetItem, QMainWindow, QMenu

from ..analysis.models import Issue
from ..editor.qt_surface import QtEditingSurface
from ..events import AnalysisFailed, AnalysisStarted, CorrectionsApplied, IssuesUpdated
from ..session import ProofreadingSession

_LOGGER = logging.getLogger(__name__)

_ISSUE_ROLE = int(Qt.ItemDataRole.UserRole)


def describe_issue(issue: Issue, text: str | None) -> str:
    fragment = issue.fragment(text or "") or "?"
    suggestion = issue.primary_suggestion
    label = f"[{issue.type.value}] {fragment}"
    if suggestion:
        label += f" → {suggestion}"
    if issue.short_message:
        label += f"  ({issue.short_message})"
    return label


class ProofreadingWindow(QMainWindow):
    """Editor pane plus an issue list dock wired to a :class:`ProofreadingSession`."""

    def __init__(self, session: ProofreadingSession, surface: QtEditingSurface) -> None:
        super().__init__()
        self._session = session
        self._surface = surface
        self._task: asyncio.Task[Any] | None = None
        self.setWindowTitle("QuillCheck")
        self.resize(1100, 720)
        self.setCentralWidget(surface.widget)

        self._issue_list = QListWidget(self)
        self._issue_list.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self._issue_list.customContextMenuRequested.connect(self._show_issue_menu)
        self._issue_list.itemActivated.connect(self._handle_issue_activated)
        dock = QDockWidget("Issues", self)
        dock.setObjectName("issuesDock")
        dock.setWidget(self._issue_list)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)

        self._install_actions()

        bus = session.bus
        bus.subscribe(IssuesUpdated, self._handle_issues_updated)
        bus.subscribe(AnalysisStarted, self._handle_analysis_started)
        bus.subscribe(AnalysisFailed, self._handle_analysis_failed)
        bus.subscribe(CorrectionsApplied, self._handle_corrections_applied)
        self.statusBar().showMessage("Ready")

    @property
    def issue_list(self) -> QListWidget:
        return self._issue_list

    def _install_actions(self) -> None:
        toolbar = self.addToolBar("Proofreading")
        toolbar.setObjectName("proofreadingToolbar")

        check_action = QAction("Check now", self)
        check_action.setShortcut("F7")
        check_action.setStatusTip("Analyse the document immediately")
        check_action.triggered.connect(self._handle_check_now)
        toolbar.addAction(check_action)

        self._accept_all_action = QAction("Accept all", self)
        self._accept_all_action.setStatusTip("Apply the first suggestion of every issue")
        self._accept_all_action.triggered.connect(self._handle_accept_all)
        toolbar.addAction(self._accept_all_action)

        toggle_action = QAction("Proofreading", self)
        toggle_action.setCheckable(True)
        toggle_action.setChecked(self._session.enabled)
        toggle_action.toggled.connect(self._session.set_enabled)
        toolbar.addAction(toggle_action)

        # Disabled until the session has both a document and a store.
        self._save_action = QAction("Save", self)
        self._save_action.setShortcut("Ctrl+S")
        self._save_action.setEnabled(self._session.can_save)
        self._save_action.triggered.connect(self._handle_save)
        toolbar.addAction(self._save_action)

    # ------------------------------------------------------------------
    # Session events
    # ------------------------------------------------------------------
    def _handle_issues_updated(self, event: IssuesUpdated) -> None:
        self._issue_list.clear()
        text = self._session.last_analyzed
        for issue in event.issues:
            item = QListWidgetItem(describe_issue(issue, text))
            item.setData(_ISSUE_ROLE, issue.id)
            if issue.message:
                item.setToolTip(issue.message)
            self._issue_list.addItem(item)
        self._refresh_status()

    def _handle_analysis_started(self, event: AnalysisStarted) -> None:
        self.statusBar().showMessage(f"Checking {event.chars} characters…")

    def _handle_analysis_failed(self, event: AnalysisFailed) -> None:
        self._issue_list.clear()
        self.statusBar().showMessage(f"Analysis failed: {event.error}")

    def _handle_corrections_applied(self, event: CorrectionsApplied) -> None:
        if event.failed:
            self.statusBar().showMessage(
                f"Applied {event.applied} correction(s); some corrections could not be applied", 8000
            )
        else:
            self.statusBar().showMessage(f"Applied {event.applied} correction(s)", 4000)

    def _refresh_status(self) -> None:
        self._save_action.setEnabled(self._session.can_save)
        status = self._session.status
        statistics = self._session.statistics
        if status == "clean":
            self.statusBar().showMessage("No issues found")
        elif status == "issues" and statistics is not None:
            self.statusBar().showMessage(
                f"{statistics.total_errors} issue(s) · quality {statistics.quality_score} · "
                f"{statistics.word_count} words"
            )
        elif status == "idle":
            self.statusBar().showMessage("Ready")

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------
    def _handle_check_now(self) -> None:
        self._run_coroutine(self._session.manual_analyze())

    def _handle_accept_all(self) -> None:
        self._session.accept_all()

    def _handle_save(self) -> None:
        try:
            document = self._session.save()
        except (OSError, RuntimeError) as exc:
            _LOGGER.warning("Save failed: %s", exc)
            self.statusBar().showMessage(f"Save failed: {exc}", 8000)
            return
        self.statusBar().showMessage(f"Saved {document.metadata.title}", 4000)

    def _handle_issue_activated(self, item: QListWidgetItem) -> None:
        issue_id = item.data(_ISSUE_ROLE)
        if issue_id:
            self._session.focus_issue(str(issue_id))

    def _show_issue_menu(self, point: Any) -> None:
        item = self._issue_list.itemAt(point)
        if item is None:
            return
        issue = self._session.issue(str(item.data(_ISSUE_ROLE)))
        if issue is None:
            return
        self._build_issue_menu(issue).exec(self._issue_list.mapToGlobal(point))

    def _build_issue_menu(self, issue: Issue) -> QMenu:
        menu = QMenu(self)
        for suggestion in issue.suggestions:
            action = menu.addAction(f"Replace with “{suggestion}”")
            action.triggered.connect(
                lambda _checked=False, value=suggestion: self._session.accept(issue.id, value)
            )
        if issue.suggestions:
            menu.addSeparator()
        dismiss = menu.addAction("Ignore")
        dismiss.triggered.connect(lambda _checked=False: self._session.dismiss(issue.id))
        return menu

    def _run_coroutine(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return None

        task = loop.create_task(coro)
        task.add_done_callback(self._on_task_finished)
        self._task = task
        return task

    def _on_task_finished(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("Background task failed: %s", exc, exc_info=exc)


__all__ = ["ProofreadingWindow", "describe_issue"]
