"""Logging setup and base error type for gogcli.

Loggers accept structured keyword fields alongside the message:

    logger.info("Message sent", id=result["id"], thread=result["threadId"])

Fields are appended to stderr output as key=value pairs and written as
separate keys in the JSON log file.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from . import paths

ROOT_LOGGER = "gogcli"


class GogError(Exception):
    """Base class for errors reported to the user without a traceback."""


class StructuredLogger(logging.LoggerAdapter):
    """Logger adapter that turns keyword arguments into record fields."""

    def process(self, msg, kwargs):
        std = {
            k: kwargs.pop(k)
            for k in ("exc_info", "stack_info", "stacklevel")
            if k in kwargs
        }
        fields = dict(kwargs)
        kwargs.clear()
        kwargs.update(std)
        kwargs["extra"] = {"fields": fields}
        return msg, kwargs


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = record.getMessage()
        if record.levelno >= logging.WARNING:
            line = f"{record.levelname.title()}: {line}"
        fields = getattr(record, "fields", None)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def get_logger(name: str) -> StructuredLogger:
    """Return a structured logger under the gogcli namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return StructuredLogger(logging.getLogger(name), {})


def configure_logging(verbose: bool = False, json_log: str | None = None) -> None:
    """Install handlers on the gogcli root logger.

    Args:
        verbose: Log DEBUG and above to stderr (default is INFO and above)
        json_log: JSON-lines log destination. "auto" uses the cache directory,
            "-" writes to stdout, None disables file logging.
    """
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    root.propagate = False

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(_ConsoleFormatter())
    root.addHandler(console)

    if json_log is None:
        return
    if json_log == "-":
        file_handler: logging.Handler = logging.StreamHandler(sys.stdout)
    else:
        path = paths.LOG_FILE if json_log == "auto" else json_log
        try:
            if json_log == "auto":
                paths.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            root.warning("Could not open JSON log file %s: %s", path, e)
            return
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(_JsonFormatter())
    root.addHandler(file_handler)
