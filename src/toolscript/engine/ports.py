"""Ephemeral port allocation for daemon tools."""

from __future__ import annotations

import socket
import threading
from typing import Set

from ..exceptions import ExecutionError
from ..shared import PortRange

__all__ = ["PortAllocator"]

_DEFAULT_START = 10240
_MAX_PORT = 65535


class PortAllocator:
    """Hands out free localhost ports from the configured range."""

    def __init__(self, ports: PortRange) -> None:
        self.start = ports.start if ports.configured else _DEFAULT_START
        self.end = ports.end or _MAX_PORT
        self._next = self.start
        self._used: Set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            span = self.end - self.start + 1
            for _ in range(span):
                port = self._next
                self._next = self.start if port >= self.end else port + 1
                if port in self._used or not _is_free(port):
                    continue
                self._used.add(port)
                return port
        raise ExecutionError(f"no free port in range {self.start}-{self.end}")

    def release(self, port: int) -> None:
        with self._lock:
            self._used.discard(port)


def _is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True
