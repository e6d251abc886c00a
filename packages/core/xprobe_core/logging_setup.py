"""Log routing for the xprobe CLI.

Everything at INFO and above goes to a JSON-lines file under the config
directory. Warnings and errors are also echoed to stderr so fallbacks such as
a missing ``$DISPLAY`` are visible without opening the log.
"""

from __future__ import annotations

import faulthandler
import json
import logging
import logging.handlers
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO

from .config import config_root

LOGGER_NAMES = ("xprobe", "xprobe_display", "xprobe_core")
LOG_FILE = "xprobe.log"
FAULT_FILE = "fault.log"

# The CLI prints these to stderr itself.
_PRINTED_EVENTS = frozenset({"command_failed", "query_failed"})


def log_dir() -> Path:
    path = config_root() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts_utc": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


class _ConsoleFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "event", None) not in _PRINTED_EVENTS


def _file_handler(keep_files: int) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir() / LOG_FILE),
        when="midnight",
        backupCount=max(2, keep_files),
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(JsonFormatter())
    return handler


def _console_handler(level: int, stream: TextIO | None) -> logging.Handler:
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("xprobe: %(levelname)s: %(message)s"))
    handler.addFilter(_ConsoleFilter())
    return handler


def configure_logging(
    keep_files: int = 7,
    console_level: int | None = logging.WARNING,
    stream: TextIO | None = None,
) -> logging.Logger:
    """Attach the file handler and, unless ``console_level`` is None, a stderr one.

    Calling this again is a no-op once handlers are attached.
    """
    root = logging.getLogger(LOGGER_NAMES[0])
    if root.handlers:
        return root

    handlers = [_file_handler(keep_files)]
    if console_level is not None:
        handlers.append(_console_handler(console_level, stream))

    for name in LOGGER_NAMES:
        target = logging.getLogger(name)
        target.setLevel(logging.INFO)
        target.propagate = False
        for handler in handlers:
            target.addHandler(handler)

    root.info("logging configured", extra={"event": "logging_configured"})
    return root


def reset_logging() -> None:
    """Detach and close every handler ``configure_logging`` attached."""
    closed: set[int] = set()
    for name in LOGGER_NAMES:
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            target.removeHandler(handler)
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))


def install_crash_hooks() -> None:
    """Log uncaught exceptions and dump native faults to ``fault.log``."""
    logger = logging.getLogger(LOGGER_NAMES[0])

    def _log_uncaught(exc_type, exc_value, exc_tb) -> None:
        crash_id = uuid.uuid4().hex
        logger.critical(
            "uncaught exception crash_id=%s",
            crash_id,
            exc_info=(exc_type, exc_value, exc_tb),
            extra={"event": "uncaught_exception"},
        )

    sys.excepthook = _log_uncaught
    fault_file = (log_dir() / FAULT_FILE).open("a", encoding="utf-8")
    faulthandler.enable(file=fault_file)
