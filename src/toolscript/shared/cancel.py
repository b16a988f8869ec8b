"""Cooperative cancellation token for long-lived modes."""

from __future__ import annotations

import asyncio
import signal
from typing import Callable, Iterable, Optional

__all__ = ["CancellationToken"]


class CancellationToken:
    """One-shot cancellation signal.

    Daemon and server modes ``await token.wait()`` instead of blocking
    forever; tests can pass a token that is already cancelled.
    """

    def __init__(self, *, cancelled: bool = False) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None
        if cancelled:
            self.cancel("pre-cancelled")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def install_signal_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
        on_signal: Optional[Callable[[], None]] = None,
    ) -> None:
        """Cancel the token on process signals where the loop supports it.

        ``on_signal`` runs after the token is cancelled.
        """

        def _handle(name: str) -> None:
            self.cancel(name)
            if on_signal is not None:
                on_signal()

        for sig in signals:
            try:
                loop.add_signal_handler(sig, _handle, sig.name)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads lack signal support
                continue
