"""Logging setup for the quillcheck launcher and headless checker."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_FORMAT", "current_log_path", "setup_logging"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_FILENAME = "quillcheck.log"
LOG_DIR_ENV = "QUILLCHECK_LOG_DIR"

# Third-party loggers that would otherwise flood DEBUG runs with transport noise.
_THIRD_PARTY: tuple[str, ...] = ("asyncio", "qasync", "httpx", "httpcore", "openai")

_active_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route the root logger to a rotating ``quillcheck.log`` and, optionally, stderr.

    Repeated calls are no-ops until ``force`` is passed, which lets ``--debug``
    or the ``debug_logging`` setting raise the level after startup. Returns the
    log file path.
    """

    global _active_path
    if _active_path is not None and not force:
        return _active_path

    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or Path.home() / ".quillcheck" / "logs")
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    third_party_level = max(level, logging.WARNING)
    for name in _THIRD_PARTY:
        logging.getLogger(name).setLevel(third_party_level)

    _active_path = log_path
    logging.getLogger(__name__).debug("Logging to %s", log_path)
    return log_path


def current_log_path() -> Path | None:
    """Return the log file chosen by the last :func:`setup_logging` call."""

    return _active_path
