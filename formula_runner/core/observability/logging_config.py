"""
Logging configuration — set up once by the CLI.

Modules log through ``logging.getLogger(__name__)`` and never touch
handlers themselves.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  FRUN_LOG_LEVEL  >  WARNING

FRUN_LOG_FILE adds a file handler (level FRUN_LOG_FILE_LEVEL, default:
the console level).  Captured build and test output goes to the
``formula_runner.output`` logger at DEBUG; the console only shows it
under --debug, while a DEBUG log file always gets it.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "FRUN_LOG_LEVEL"
ENV_LOG_FILE = "FRUN_LOG_FILE"
ENV_LOG_FILE_LEVEL = "FRUN_LOG_FILE_LEVEL"

OUTPUT_LOGGER = "formula_runner.output"

# level → (format, datefmt) for the console
_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(message)s", "%H:%M:%S"),
}
_CONSOLE_DEFAULT = ("%(levelname)s: %(message)s", None)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _HideOutput(logging.Filter):
    """Drop captured subprocess output from a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(OUTPUT_LOGGER)


def resolve_level(*, debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Console level name from CLI flags, else ``FRUN_LOG_LEVEL``."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name.  Unknown names mean WARNING.
        log_file: Also log to this file.
        log_file_level: Level for ``log_file``; defaults to ``level``.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _CONSOLE_FORMATS.get(console_level, _CONSOLE_DEFAULT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    if console_level > logging.DEBUG:
        console.addFilter(_HideOutput())

    handlers: list[logging.Handler] = [console]
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        handlers.append(fh)
        root_level = min(root_level, file_level)

    root = logging.getLogger()
    root.handlers[:] = handlers
    root.setLevel(root_level)

    # A broken stderr must never fail a build
    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    numeric = logging.getLevelName((level or "").upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
