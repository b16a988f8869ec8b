"""JSON-lines event stream sinks (file, descriptor, or named pipe)."""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, BinaryIO, Dict, Optional

from ..exceptions import ConfigurationError

__all__ = ["EventSink", "open_event_sink"]

logger = logging.getLogger(__name__)

_FD_PREFIX = "fd://"
_WINDOWS_PIPE_PREFIX = "\\\\.\\pipe\\"


class EventSink:
    """Append-only writer of run events, one JSON object per line."""

    def __init__(self, target: str, handle: BinaryIO) -> None:
        self.target = target
        self._handle = handle
        self._lock = threading.Lock()
        self._closed = False

    def emit(self, event_type: str, data: Optional[Dict[str, Any]] = None) -> None:
        event = {
            "type": event_type,
            "time": _utc_ts_ms_z(),
            **(data or {}),
        }
        line = (json.dumps(event, separators=(",", ":"), default=str) + "\n").encode(
            "utf-8"
        )
        with self._lock:
            if self._closed:
                return
            try:
                self._handle.write(line)
                self._handle.flush()
            except OSError as exc:
                logger.debug("event sink write error (%s): %s", self.target, exc)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._handle.close()
            except OSError:
                pass


def open_event_sink(target: str) -> EventSink:
    """Open ``target`` for event streaming.

    Accepts ``fd://N`` (an inherited descriptor, duplicated so closing the
    sink leaves the original open), a Windows named pipe
    (``\\\\.\\pipe\\name``), a POSIX FIFO, or a regular file (appended).
    Any failure is a configuration error.
    """
    try:
        if target.startswith(_FD_PREFIX):
            return EventSink(target, _open_descriptor(target))
        if target.startswith(_WINDOWS_PIPE_PREFIX):
            return EventSink(target, open(target, "wb", buffering=0))
        return EventSink(target, open(target, "ab", buffering=0))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(
            f"cannot open event stream target {target}: {exc}"
        ) from exc


def _open_descriptor(target: str) -> BinaryIO:
    raw = target[len(_FD_PREFIX) :].strip()
    try:
        fd = int(raw)
    except ValueError:
        raise ValueError(f"invalid file descriptor: {raw!r}") from None
    if fd < 0:
        raise ValueError(f"invalid file descriptor: {fd}")
    return os.fdopen(os.dup(fd), "wb", buffering=0)


def _utc_ts_ms_z() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
