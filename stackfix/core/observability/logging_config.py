"""
Logging configuration — one setup call for the CLI, plus per-fix context.

Scans run on a thread pool, so lines from different fixes interleave.
Every record passing through a stackfix handler carries ``fix_id``:
the id of the fix whose scan or remediation is running on that thread
(``-`` outside of one). The orchestrator marks the span with
``fix_scope``:

    with fix_scope(fix.id):
        fix.scan(config, ctx)

Levels: CLI flag > STACKFIX_LOG_LEVEL > WARNING. A log file
(STACKFIX_LOG_FILE) always gets the full format, at its own level
(STACKFIX_LOG_FILE_LEVEL).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

ENV_LOG_LEVEL = "STACKFIX_LOG_LEVEL"
ENV_LOG_FILE = "STACKFIX_LOG_FILE"
ENV_LOG_FILE_LEVEL = "STACKFIX_LOG_FILE_LEVEL"

NO_FIX = "-"

_current_fix: ContextVar[str] = ContextVar("stackfix_fix_id", default=NO_FIX)

# ── Format strings ──────────────────────────────────────────────

_FMT_MINIMAL = "%(message)s"

_FMT_VERBOSE = "%(asctime)s [%(fix_id)s] %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(threadName)s [%(fix_id)s] %(name)s:%(lineno)d: %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

_FMT_FILE = _FMT_DEBUG
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# The AWS SDK logs every request at DEBUG
_NOISY_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3")


# ── Fix context ─────────────────────────────────────────────────


@contextmanager
def fix_scope(fix_id: str) -> Iterator[None]:
    """Tag log records emitted on this thread with ``fix_id``."""
    token = _current_fix.set(fix_id)
    try:
        yield
    finally:
        _current_fix.reset(token)


class FixContextFilter(logging.Filter):
    """Stamp ``record.fix_id`` so formats can reference it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "fix_id"):
            record.fix_id = _current_fix.get()
        return True


# ── Setup ───────────────────────────────────────────────────────


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Level for the log file; defaults to ``level``.
        quiet_third_party: Keep SDK loggers at WARNING unless at DEBUG.
    """
    numeric_level = _parse_level(level)
    fix_filter = FixContextFilter()

    # ── Console handler (stderr) ────────────────────────────────
    fmt, datefmt = _console_format(numeric_level)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.addFilter(fix_filter)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    effective_level = numeric_level

    # ── File handler (optional) ─────────────────────────────────
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.addFilter(fix_filter)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)

    root.setLevel(effective_level)

    # ── SDK noise control ───────────────────────────────────────
    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_format(numeric_level: int) -> tuple[str, str | None]:
    if numeric_level <= logging.DEBUG:
        return _FMT_DEBUG, _DATEFMT_DEBUG
    if numeric_level <= logging.INFO:
        return _FMT_VERBOSE, _DATEFMT_VERBOSE
    return _FMT_MINIMAL, None


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
