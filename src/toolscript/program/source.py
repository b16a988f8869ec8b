"""Program acquisition from stdin or a named source."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Callable, Optional, Sequence

from ..shared import EMPTY_PROGRAM, Program
from .loader import ProgramLoader

__all__ = ["STDIN_SENTINEL", "ProgramAcquirer", "StdinCache", "read_stdin_bytes"]

logger = logging.getLogger(__name__)

STDIN_SENTINEL = "-"


def read_stdin_bytes() -> bytes:
    return sys.stdin.buffer.read()


class StdinCache:
    """Single-assignment cell for the bytes of standard input.

    The first ``get()`` reads the stream; every later call returns the same
    bytes. A failed read leaves the cell empty and re-raises.
    """

    def __init__(self, reader: Callable[[], bytes] = read_stdin_bytes) -> None:
        self._reader = reader
        self._lock = threading.Lock()
        self._value: Optional[bytes] = None
        self.reads = 0

    @property
    def filled(self) -> bool:
        return self._value is not None

    def get(self) -> bytes:
        with self._lock:
            if self._value is None:
                self.reads += 1
                self._value = self._reader()
                logger.debug("read %d bytes from stdin", len(self._value))
            return self._value

    def text(self) -> str:
        return self.get().decode("utf-8", errors="replace")


class ProgramAcquirer:
    """Turns the positional argument list into a loaded ``Program``."""

    def __init__(self, loader: ProgramLoader, stdin: StdinCache) -> None:
        self.loader = loader
        self.stdin = stdin

    async def acquire(self, args: Sequence[str], sub_tool: str = "") -> Program:
        if not args:
            return EMPTY_PROGRAM
        if args[0] == STDIN_SENTINEL:
            return await self.loader.from_source(self.stdin.text(), sub_tool, "stdin")
        return await self.loader.from_reference(args[0], sub_tool)
