"""Logging setup for the toolscript CLI."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, TextIO

__all__ = ["JSONFormatter", "TruncatingFormatter", "setup_logging"]

_PACKAGE_LOGGER = "toolscript"
_NOISY_THIRD_PARTY_LOGGERS = (
    "aiohttp",
    "aiohttp.access",
    "aiohttp.client",
    "aiohttp.server",
    "asyncio",
)
_MAX_MESSAGE_LEN = 200


class JSONFormatter(logging.Formatter):
    """Format log records as JSON Lines."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _to_iso_millis(datetime.now(timezone.utc)),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _LOG_RECORD_IGNORED_FIELDS:
                continue
            entry[key] = _json_safe(value)

        return json.dumps(entry)


class TruncatingFormatter(logging.Formatter):
    """Plain formatter that shortens long messages to a single line."""

    def __init__(self, fmt: str, max_len: int = _MAX_MESSAGE_LEN) -> None:
        super().__init__(fmt)
        self.max_len = max_len

    def formatMessage(self, record: logging.LogRecord) -> str:
        message = record.message.replace("\n", " ")
        if len(message) > self.max_len:
            message = message[: self.max_len - 3] + "..."
        record.message = message
        return super().formatMessage(record)


_LOG_RECORD_IGNORED_FIELDS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
}


def setup_logging(
    *,
    debug: bool = False,
    quiet: bool = False,
    truncate: bool = True,
    log_file: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure console (and optional JSONL file) logging for one invocation."""
    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False

    for handler in _build_handlers(debug, quiet, truncate, log_file, stream):
        package_logger.addHandler(handler)
    _limit_third_party_noise(debug)


def _determine_console_level(*, debug: bool, quiet: bool) -> int:
    if debug:
        return logging.DEBUG
    if quiet:
        return logging.ERROR
    return logging.INFO


def _build_handlers(
    debug: bool,
    quiet: bool,
    truncate: bool,
    log_file: Optional[Path],
    stream: Optional[TextIO],
) -> List[logging.Handler]:
    console_handler = logging.StreamHandler(stream or sys.stderr)
    console_handler.setLevel(_determine_console_level(debug=debug, quiet=quiet))
    fmt = "%(levelname)s %(name)s: %(message)s"
    if truncate and not debug:
        console_handler.setFormatter(TruncatingFormatter(fmt))
    else:
        console_handler.setFormatter(logging.Formatter(fmt))

    handlers: List[logging.Handler] = [console_handler]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)
    return handlers


def _limit_third_party_noise(debug: bool) -> None:
    for name in _NOISY_THIRD_PARTY_LOGGERS:
        noisy_logger = logging.getLogger(name)
        noisy_logger.setLevel(logging.DEBUG if debug else logging.WARNING)


def _to_iso_millis(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _json_safe(value: object) -> object:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value
