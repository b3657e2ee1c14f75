"""
Logging configuration — central setup for the quill CLI and the watcher.

Called once per invocation by main.py. Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  QUILL_LOG_LEVEL env var  >  WARNING (default)

A log file can be added with QUILL_LOG_FILE, at its own level
(QUILL_LOG_FILE_LEVEL), which is useful for a long-running ``quill watch``.
"""

from __future__ import annotations

import logging
import os
import sys

# Console format per threshold: the first entry whose level is >= the
# configured level wins.
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(levelname)s %(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger for the whole process.

    Replaces any handlers installed by a previous call, so repeated CLI
    invocations in one process (tests, the watcher) never stack handlers.
    ``log_file`` and ``log_file_level`` default to ``QUILL_LOG_FILE`` and
    ``QUILL_LOG_FILE_LEVEL``.
    """
    console_level = _parse_level(level)
    log_file = log_file or os.environ.get("QUILL_LOG_FILE")
    log_file_level = log_file_level or os.environ.get("QUILL_LOG_FILE_LEVEL")

    fmt, datefmt = next(
        (f, d) for threshold, f, d in _CONSOLE_FORMATS if console_level <= threshold
    )
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown names fall back to WARNING."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING


# ── Composer progress → log records ─────────────────────────────

# Event types logged at INFO; everything else goes to DEBUG
_INFO_EVENTS = frozenset({
    "cache:download",
    "installed:copy",
    "installed:remove",
    "run:start",
    "run:end",
    "watch:latest",
})


def log_events(bus) -> None:
    """Mirror EventBus milestones into the ``quill.events`` logger.

    Script output (``run:stdout`` / ``run:stderr``) is left to the
    caller, which usually echoes it directly.
    """
    events_logger = logging.getLogger("quill.events")

    def _on_event(event: dict) -> None:
        etype = event["type"]
        if etype in ("run:stdout", "run:stderr"):
            return
        if etype == "watch:error":
            events_logger.error("%s %s", event["key"] or "-", event["data"].get("error", ""))
            return
        level = logging.INFO if etype in _INFO_EVENTS else logging.DEBUG
        events_logger.log(level, "%s %s %s", etype, event["key"] or "-", event["data"])

    bus.subscribe("*", _on_event)
