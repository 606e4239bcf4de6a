"""
Process logging for the wizard control-plane.

``setup_logging`` installs the root handlers once, from ``main.cli``;
modules only ever call ``logging.getLogger(__name__)``.

Level: ``--debug`` / ``--verbose`` / ``--quiet``, else WIZ_LOG_LEVEL,
else WARNING.  WIZ_LOG_FILE adds a file handler with its own level
(WIZ_LOG_FILE_LEVEL, defaulting to the console level).

Console output gets chattier as the level drops: bare messages at
WARNING, a clock and logger name at INFO, level and line number at
DEBUG.  The file always gets the DEBUG layout with a full date.

Shell config values and UI payloads pass through log calls as dict
arguments, so every handler carries a RedactionFilter that masks the
values of secret-looking keys (``apiKey``, ``ANTHROPIC_API_KEY``,
``token``, ``password``) before formatting.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

_DETAILED = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"

# (highest level it applies to, format, datefmt), most detailed first
_CONSOLE_LAYOUTS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)
_FILE_LAYOUT = (_DETAILED, "%Y-%m-%d %H:%M:%S")

# flask's dev server logs every request at INFO
_CHATTY_LIBRARIES = ("urllib3", "werkzeug")

_SECRET_KEY_RE = re.compile(r"api[_-]?key|token|passw(or)?d|secret", re.IGNORECASE)
_MASK = "****"


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: _MASK if isinstance(k, str) and _SECRET_KEY_RE.search(k) else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(v) for v in value)
    return value


class RedactionFilter(logging.Filter):
    """Mask secret values inside dict log arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = _redact(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(_redact(a) for a in record.args)
        return True


def _console_layout(level: int) -> tuple[str, str | None]:
    for ceiling, fmt, datefmt in _CONSOLE_LAYOUTS:
        if level <= ceiling:
            return fmt, datefmt
    return _CONSOLE_LAYOUTS[-1][1:]


def _handler(handler: logging.Handler, level: int, fmt: str, datefmt: str | None,
             redaction: RedactionFilter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    handler.addFilter(redaction)
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name; unknown names mean WARNING.
        log_file: Also log to this file when set.
        log_file_level: Level for ``log_file``; the console level if unset.
        quiet_third_party: Hold chatty libraries at WARNING (ignored at DEBUG).
    """
    console_level = _parse_level(level)
    redaction = RedactionFilter()

    handlers = [_handler(
        logging.StreamHandler(sys.stderr), console_level, *_console_layout(console_level), redaction,
    )]
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handlers.append(_handler(
            logging.FileHandler(log_file, encoding="utf-8"), file_level, *_FILE_LAYOUT, redaction,
        ))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # the root must let through whatever the most verbose handler wants
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _parse_level(level: str | None) -> int:
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
