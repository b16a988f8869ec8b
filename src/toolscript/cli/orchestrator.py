"""Run orchestration: acquire the program, pick a mode, and execute it.

The orchestrator owns the lifetime of the engine for one invocation. It
never inspects collaborator errors; they propagate to ``main`` which maps
them to exit codes. On error nothing is printed.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TextIO,
)

from ..cache import DiskCache
from ..chat import PlainChatIO, RichChatIO, load_chat_state, run_chat
from ..chat.session import ChatIO
from ..config import DEFAULT_UI_TOOL
from ..engine import Engine
from ..program import (
    STDIN_SENTINEL,
    ProgramAcquirer,
    ProgramLoader,
    StdinCache,
    assemble,
)
from ..server import ToolscriptHTTPServer
from ..shared import CancellationToken, ChatResponse, Program, RuntimeOptions, Tool
from .listing import format_models, format_tool_listing, print_listing
from .modes import ExecutionMode, ModeInputs, preload_mode, select_mode
from .output import print_output
from .startup import StartupContext
from .ui import bootstrap_ui

__all__ = ["EngineLike", "RunOrchestrator"]

logger = logging.getLogger(__name__)


class EngineLike(Protocol):
    extra_env: Dict[str, str]

    async def run(self, program: Program, env: Mapping[str, str], input: str) -> str:
        ...

    async def chat(
        self,
        prev_state: Optional[str],
        program: Program,
        env: Mapping[str, str],
        input: str,
    ) -> ChatResponse:
        ...

    async def list_models(self, providers: Sequence[str] = ()) -> List[str]:
        ...

    def list_tools(self, program: Program) -> List[Tool]:
        ...

    async def close(self, graceful: bool = True) -> None:
        ...


class ServerLike(Protocol):
    async def start(self, token: CancellationToken) -> None:
        ...


ServerFactory = Callable[[str, RuntimeOptions], ServerLike]


class RunOrchestrator:
    """Executes exactly one mode per invocation."""

    def __init__(
        self,
        args: argparse.Namespace,
        startup: StartupContext,
        options: RuntimeOptions,
        *,
        config: Optional[Dict[str, Any]] = None,
        token: Optional[CancellationToken] = None,
        engine: Optional[EngineLike] = None,
        loader: Optional[ProgramLoader] = None,
        stdin: Optional[StdinCache] = None,
        server_factory: Optional[ServerFactory] = None,
        chat_io: Optional[ChatIO] = None,
        print_help: Optional[Callable[[], None]] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        self.args = args
        self.startup = startup
        self.options = options
        self.config = config or {}
        self.token = token or CancellationToken()
        self._engine = engine
        self.stdin = stdin or StdinCache()
        self._loader = loader
        self.server_factory = server_factory or (
            lambda address, opts: ToolscriptHTTPServer(address, opts)
        )
        self.chat_io = chat_io
        self.print_help = print_help
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.mode: Optional[ExecutionMode] = None
        # True while only waiting for cancellation (server or daemon hold).
        self.holding = False

    # ------------------------------------------------------------------ #
    # Collaborators
    # ------------------------------------------------------------------ #
    @property
    def engine(self) -> EngineLike:
        if self._engine is None:
            self._engine = Engine(self.options)
        return self._engine

    @property
    def acquirer(self) -> ProgramAcquirer:
        if self._loader is None:
            cache = getattr(self.engine, "cache", None) or DiskCache(self.options.cache)
            self._loader = ProgramLoader(cache)
        return ProgramAcquirer(self._loader, self.stdin)

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #
    async def run(self) -> int:
        positional: List[str] = list(getattr(self.args, "args", None) or [])
        pre = preload_mode(ModeInputs.from_args(self.args, positional))
        if pre is ExecutionMode.SERVER:
            self.mode = pre
            return await self._serve()
        try:
            if pre is ExecutionMode.LIST_MODELS:
                self.mode = pre
                return await self._list_models(positional)
            return await self._run_program(positional)
        finally:
            if self._engine is not None:
                await self._engine.close(graceful=True)

    async def _run_program(self, positional: List[str]) -> int:
        sub_tool = str(getattr(self.args, "sub_tool", "") or "")
        daemon = bool(getattr(self.args, "daemon", False))
        program = await self._acquire(positional, sub_tool, blocking=daemon)

        mode = select_mode(ModeInputs.from_args(self.args, positional, program))
        self.mode = mode
        logger.debug("selected mode %s for program %r", mode.value, program.name)

        result = await self._dispatch(mode, program, positional, sub_tool)
        # The chat UI always runs as a daemon.
        if daemon or mode is ExecutionMode.UI_BOOTSTRAP:
            await self._hold()
        return result

    async def _acquire(
        self, positional: Sequence[str], sub_tool: str, *, blocking: bool
    ) -> Program:
        program = await self.acquirer.acquire(positional, sub_tool)
        return program.set_blocking() if blocking else program

    async def _dispatch(
        self,
        mode: ExecutionMode,
        program: Program,
        positional: List[str],
        sub_tool: str,
    ) -> int:
        if mode is ExecutionMode.LIST_TOOLS:
            return self._list_tools(program)
        if mode is ExecutionMode.HELP:
            if self.print_help is not None:
                self.print_help()
            return 0
        if mode is ExecutionMode.ASSEMBLE:
            return self._assemble(program)

        input_text = self._resolve_input(positional)
        env = self.startup.env
        if mode is ExecutionMode.STATELESS_CHAT:
            return await self._stateless_chat(program, env, input_text)
        if mode is ExecutionMode.INTERACTIVE_CHAT:
            return await self._interactive_chat(
                program, positional, sub_tool, env, input_text
            )
        if mode is ExecutionMode.UI_BOOTSTRAP:
            positional, env = bootstrap_ui(
                positional, env, self._ui_tool(), self.startup.cwd
            )
            program = await self._acquire(positional, "", blocking=True)
            # The UI owns user interaction; tools must not prompt on this terminal.
            self.engine.extra_env = {}
            input_text = self._resolve_input(positional)
        return await self._plain_run(program, env, input_text)

    # ------------------------------------------------------------------ #
    # Modes
    # ------------------------------------------------------------------ #
    async def _serve(self) -> int:
        address = str(
            getattr(self.args, "listen_address", None)
            or (self.config.get("server") or {}).get("listen_address")
            or "127.0.0.1:0"
        )
        server = self.server_factory(address, self.options)
        self.holding = True
        try:
            await server.start(self.token)
        finally:
            self.holding = False
        return 0

    async def _list_models(self, providers: Sequence[str]) -> int:
        models = await self.engine.list_models(providers)
        print_listing(format_models(models), self.stdout)
        return 0

    def _list_tools(self, program: Program) -> int:
        tools = self.engine.list_tools(program)
        print_listing(format_tool_listing(program, tools), self.stdout)
        return 0

    def _assemble(self, program: Program) -> int:
        target = getattr(self.args, "output", None)
        if target and target != "-":
            with open(target, "w", encoding="utf-8") as handle:
                assemble(program, handle)
        else:
            assemble(program, self.stdout)
        return 0

    async def _stateless_chat(
        self, program: Program, env: Mapping[str, str], input_text: str
    ) -> int:
        state = load_chat_state(getattr(self.args, "chat_state", ""))
        response = await self.engine.chat(state, program, env, input_text)
        self._print(input_text, json.dumps(response.to_dict()))
        return 0

    async def _interactive_chat(
        self,
        program: Program,
        positional: Sequence[str],
        sub_tool: str,
        env: Mapping[str, str],
        input_text: str,
    ) -> int:
        state = load_chat_state(getattr(self.args, "chat_state", ""))
        daemon = bool(getattr(self.args, "daemon", False))

        async def provider() -> Program:
            return await self._acquire(positional, sub_tool, blocking=daemon)

        await run_chat(
            self.engine.chat,
            state,
            provider,
            env,
            input_text,
            str(getattr(self.args, "save_chat_state_file", "") or ""),
            self._chat_io(program),
        )
        return 0

    async def _plain_run(
        self, program: Program, env: Mapping[str, str], input_text: str
    ) -> int:
        result = await self.engine.run(program, env, input_text)
        self._print(input_text, result)
        return 0

    async def _hold(self) -> None:
        logger.info("waiting for interrupt")
        self.holding = True
        try:
            await self.token.wait()
        finally:
            self.holding = False

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _resolve_input(self, positional: Sequence[str]) -> str:
        source = getattr(self.args, "input", None)
        if source == STDIN_SENTINEL:
            return self.stdin.text()
        if source:
            return Path(source).read_text(encoding="utf-8")
        return " ".join(positional[1:])

    def _print(self, input_text: str, result: str) -> None:
        print_output(
            input_text,
            result,
            output_file=str(getattr(self.args, "output", "") or ""),
            quiet=self.startup.quiet,
            stdout=self.stdout,
            stderr=self.stderr,
        )

    def _ui_tool(self) -> str:
        return str((self.config.get("ui") or {}).get("tool") or DEFAULT_UI_TOOL)

    def _chat_io(self, program: Program) -> ChatIO:
        if self.chat_io is not None:
            return self.chat_io
        plain = (
            getattr(self.args, "disable_tui", False)
            or getattr(self.args, "debug", False)
            or getattr(self.args, "debug_messages", False)
            or not _isatty(self.stdout)
        )
        if plain:
            return PlainChatIO(out=self.stdout)
        return RichChatIO(console=None, title=program.name)


def _isatty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False
