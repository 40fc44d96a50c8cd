"""Application bootstrap helpers for the QuillCheck desktop app."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, cast

from .detectors import DemoDetector, DetectorError, IssueDetector, build_detector
from .editor.document_model import DocumentNotFoundError, FileDocumentStore, RichDocument
from .editor.surface import HtmlEditingSurface
from .services.settings import Settings, SettingsStore, redact_secret
from .session import ProofreadingSession
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


@dataclass(slots=True)
class QtRuntime:
    """Container returned by :func:`create_qapp`."""

    app: Any
    loop: asyncio.AbstractEventLoop


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    _install_qt_message_handler()


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except Exception as exc:  # pragma: no cover - defensive path
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def create_qapp(settings: Settings) -> QtRuntime:
    """Create a qasync-powered QApplication instance."""

    try:  # Local import keeps the headless --check path free of Qt.
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to launch the QuillCheck UI.") from exc

    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on env setup
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("QuillCheck")
    app.setApplicationDisplayName("QuillCheck")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    try:
        app.aboutToQuit.connect(loop.stop)  # type: ignore[attr-defined]
    except AttributeError:  # pragma: no cover - in case of mock QApplication
        pass

    _LOGGER.debug("Qt runtime ready (detector=%s)", settings.detector_backend)
    return QtRuntime(app=app, loop=loop)


def build_session_detector(settings: Settings) -> IssueDetector:
    """Build the configured detector, falling back to the offline demo rules."""

    try:
        return build_detector(settings)
    except DetectorError as exc:
        _LOGGER.warning("Detector backend '%s' unavailable (%s); using demo rules.", settings.detector_backend, exc)
        return DemoDetector()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `quillcheck` console script."""

    args, passthrough = _parse_cli_args(argv)
    _rewrite_sys_argv(passthrough)

    debug = args.debug or _env_flag("QUILLCHECK_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("QUILLCHECK_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    if args.check:
        code = asyncio.run(run_check(Path(args.check).expanduser(), settings, apply=args.apply))
        raise SystemExit(code)

    document: RichDocument | None = None
    if args.file:
        try:
            document = FileDocumentStore.load_path(Path(args.file).expanduser())
        except DocumentNotFoundError:
            print(f"File not found: {args.file}", file=sys.stderr)
            raise SystemExit(2)

    runtime = create_qapp(settings)

    from .editor.qt_surface import QtEditingSurface
    from .ui.window import ProofreadingWindow

    surface = QtEditingSurface()
    store = FileDocumentStore(document.metadata.path.parent) if document and document.metadata.path else None
    session = ProofreadingSession(
        surface,
        build_session_detector(settings),
        settings,
        document=document,
        store=store,
        loop=runtime.loop,
    )
    window = ProofreadingWindow(session, surface)
    window.show()
    if document is not None:
        session.load_document(document)

    loop = runtime.loop
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        with contextlib.suppress(RuntimeError):
            loop.run_until_complete(_shutdown_session(session))
        _drain_event_loop(loop)
        loop.close()


async def run_check(
    path: Path,
    settings: Settings,
    *,
    apply: bool = False,
    detector: IssueDetector | None = None,
    stream: TextIO | None = None,
) -> int:
    """Analyse an HTML file without a window and print a JSON report.

    With ``apply`` the first suggestion of every issue is written back to the
    file. Returns the process exit code: ``1`` when analysis failed.
    """

    destination = stream or sys.stdout
    try:
        document = FileDocumentStore.load_path(path)
    except DocumentNotFoundError:
        print(f"File not found: {path}", file=sys.stderr)
        return 2
    surface = HtmlEditingSurface(document.rich)
    session = ProofreadingSession(
        surface,
        detector or build_session_detector(settings),
        settings,
        document=document,
        store=FileDocumentStore(path.parent),
    )
    try:
        await session.manual_analyze()
        report: Dict[str, Any] = {
            "path": str(path),
            "status": session.status,
            "error": session.error,
            "statistics": asdict(session.statistics) if session.statistics else None,
            "issues": [issue.to_dict() for issue in session.issues],
        }
        if apply and session.issues:
            batch = session.accept_all()
            if batch.applied_count:
                session.save()
            report["corrections"] = {
                "applied": batch.applied_count,
                "failed": batch.failed_count,
                "partial": batch.partial,
            }
    finally:
        await session.aclose()
    json.dump(report, destination, indent=2, ensure_ascii=False)
    destination.write("\n")
    return 1 if report["status"] == "failed" else 0


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel tasks left on ``loop`` and close its async generators."""

    if loop.is_closed():
        return
    leftovers = [task for task in asyncio.all_tasks(loop) if not task.done()]
    for task in leftovers:
        task.cancel()
    with contextlib.suppress(RuntimeError):
        if leftovers:
            _LOGGER.debug("Cancelled %s task(s) still queued at shutdown", len(leftovers))
            loop.run_until_complete(asyncio.gather(*leftovers, return_exceptions=True))
        loop.run_until_complete(loop.shutdown_asyncgens())


async def _shutdown_session(session: ProofreadingSession | None) -> None:
    """Stop the scheduler and close the detector's network resources."""

    if session is None:
        return
    try:
        await session.aclose()
    except Exception as exc:  # pragma: no cover - defensive logging
        _LOGGER.debug("Session shutdown failed: %s", exc)


def _install_qt_message_handler() -> None:
    """Forward Qt's own diagnostics into the ``PySide6`` logger."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - headless installs
        return

    qt_logger = logging.getLogger("PySide6")
    quiet = {QtMsgType.QtDebugMsg: logging.DEBUG, QtMsgType.QtInfoMsg: logging.INFO}

    def _forward(mode, _context, message):  # type: ignore[no-untyped-def]
        if mode in quiet:
            qt_logger.log(quiet[mode], message)
        elif mode == QtMsgType.QtWarningMsg:
            qt_logger.warning(message)
        else:
            qt_logger.error(message)

    qInstallMessageHandler(_forward)


def _parse_cli_args(argv: Sequence[str] | None) -> tuple[argparse.Namespace, list[str]]:
    parser = argparse.ArgumentParser(
        prog="quillcheck",
        add_help=True,
        description="Launch the QuillCheck proofreading editor or check a document headlessly.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.quillcheck/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--file", metavar="PATH", help="HTML document to open in the editor.")
    parser.add_argument(
        "--check",
        metavar="PATH",
        help="Analyse an HTML document without opening a window and print a JSON report.",
    )
    parser.add_argument(
        "--apply",
        action="store_true",
        help="With --check, write the first suggestion of every issue back to the file.",
    )
    return parser.parse_known_args(argv)


def _rewrite_sys_argv(passthrough: Sequence[str]) -> None:
    program = sys.argv[0] if sys.argv else "quillcheck"
    sys.argv = [program, *passthrough]


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs into overrides typed like the ``Settings`` defaults."""

    defaults = Settings()
    known = {item.name for item in fields(Settings)}
    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw_value = entry.partition("=")
        key = key.strip()
        if not separator or not key:
            raise ValueError(f"Expected KEY=VALUE, got '{entry}'.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(getattr(defaults, key), raw_value.strip())
    return overrides


def _coerce_value(template: Any, raw_value: str) -> Any:
    # bool before int: bool is an int subclass
    if isinstance(template, bool):
        return _parse_bool(raw_value)
    if isinstance(template, int):
        return int(raw_value, 10)
    if isinstance(template, float):
        return float(raw_value)
    if isinstance(template, (dict, list)):
        kind = type(template)
        try:
            value = json.loads(raw_value or ("{}" if kind is dict else "[]"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Expected a JSON {kind.__name__}: {exc.msg}") from exc
        if not isinstance(value, kind):
            raise ValueError(f"Expected a JSON {kind.__name__}, got {type(value).__name__}")
        return value
    if template is None and raw_value.lower() in {"", "none", "null"}:
        return None
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered not in _TRUE_VALUES and lowered not in _FALSE_VALUES:
        raise ValueError(f"Cannot coerce '{value}' to a boolean.")
    return lowered in _TRUE_VALUES


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    """Print the effective settings with the API key redacted."""

    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    report = {
        "settings": payload,
        "meta": {
            "path": str(store.path),
            "secret_backend": store.vault.strategy,
            "cli_overrides": sorted(overrides),
            "environment_variables": _active_env_overrides(),
        },
    }
    destination = stream or sys.stdout
    json.dump(report, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("QUILLCHECK_"))


__all__ = [
    "QtRuntime",
    "build_session_detector",
    "configure_logging",
    "create_qapp",
    "load_settings",
    "main",
    "run_check",
]
