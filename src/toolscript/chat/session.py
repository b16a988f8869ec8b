"""Multi-turn interactive chat loop.

The loop itself is front-end agnostic: it talks to a ``ChatIO`` for input
and display, so the plain line loop and the rich terminal UI share the same
turn handling and state persistence.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Mapping, Optional, Protocol, TextIO

from ..shared import ChatResponse, Program
from .state import save_chat_state

__all__ = ["ChatFn", "ChatIO", "PlainChatIO", "ProgramProvider", "run_chat"]

logger = logging.getLogger(__name__)

ChatFn = Callable[[Optional[str], Program, Mapping[str, str], str], Awaitable[ChatResponse]]
ProgramProvider = Callable[[], Awaitable[Program]]

_EXIT_WORDS = frozenset({"exit", "quit", "/exit", "/quit"})


class ChatIO(Protocol):
    async def read(self) -> Optional[str]:
        """Next user message, or None at end of input."""

    def show(self, response: ChatResponse) -> None:
        ...


class PlainChatIO:
    """Line-oriented chat over plain text streams."""

    def __init__(
        self,
        out: Optional[TextIO] = None,
        readline: Optional[Callable[[], str]] = None,
        prompt: str = "> ",
    ) -> None:
        self.out = out or sys.stdout
        self._readline = readline or sys.stdin.readline
        self.prompt = prompt

    async def read(self) -> Optional[str]:
        self.out.write(self.prompt)
        self.out.flush()
        line = await asyncio.to_thread(self._readline)
        if not line:
            return None
        return line.rstrip("\n")

    def show(self, response: ChatResponse) -> None:
        content = response.content
        self.out.write(content if content.endswith("\n") else content + "\n")
        self.out.flush()


async def run_chat(
    chat: ChatFn,
    prev_state: Optional[str],
    program_provider: ProgramProvider,
    env: Mapping[str, str],
    input: str,
    save_target: str,
    io: ChatIO,
) -> Optional[str]:
    """Run turns until the tool reports done or input ends.

    The first turn always runs with ``input`` (possibly empty) so the tool
    can greet the user. Returns the final state.
    """
    program = await program_provider()
    state = prev_state
    message = input
    while True:
        response = await chat(state, program, env, message)
        state = response.state
        save_chat_state(save_target, state)
        io.show(response)
        if response.done:
            break
        line = await io.read()
        if line is None or line.strip().lower() in _EXIT_WORDS:
            break
        message = line
    logger.debug("chat session ended")
    return state
