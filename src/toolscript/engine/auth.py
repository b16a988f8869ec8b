"""Interactive confirmation hook for potentially dangerous tool actions."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from rich.console import Console
from rich.prompt import Confirm

__all__ = ["ABORTED_BY_USER", "make_confirm_authorizer"]

logger = logging.getLogger(__name__)

ABORTED_BY_USER = "ABORTED BY USER"


def make_confirm_authorizer(console: Optional[Console] = None):
    """Build an authorizer that asks on the terminal before each action."""
    prompt_console = console or Console(stderr=True)
    lock = asyncio.Lock()

    async def _authorize(action: str) -> bool:
        # Serialize prompts so concurrent tool calls never interleave questions.
        async with lock:
            allowed = await asyncio.to_thread(
                Confirm.ask,
                f"[yellow]Allow the following?[/yellow]\n{action}\n",
                console=prompt_console,
                default=False,
            )
        logger.debug("authorization %s: %s", "granted" if allowed else "denied", action)
        return bool(allowed)

    return _authorize

