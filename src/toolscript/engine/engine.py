"""Default execution engine: runs tools and chat turns for a Program."""

from __future__ import annotations

import json
import logging
import re
import shutil
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..cache import DiskCache
from ..exceptions import ExecutionError
from ..shared import ChatResponse, Program, RuntimeOptions, Tool
from .builtins import (
    BuiltinContext,
    builtin_parameters,
    call_builtin,
    is_builtin,
    list_builtin_tools,
)
from .client import ModelClient
from .commands import DAEMON_PREFIX, CommandContext, DaemonManager, run_command
from .ports import PortAllocator

__all__ = ["Engine"]

logger = logging.getLogger(__name__)

_MAX_TOOL_ROUNDS = 25
_MAX_DEPTH = 10
_FN_NAME_RE = re.compile(r"[^a-zA-Z0-9_-]")


class Engine:
    """Resolves and runs the tools of a loaded program.

    One engine serves one invocation (or one server lifetime). It owns the
    model client, the daemon processes it starts, and the workspace
    directory when none was configured.
    """

    def __init__(
        self, options: RuntimeOptions, *, client: Optional[ModelClient] = None
    ) -> None:
        self.options = options
        self.cache = DiskCache(options.cache)
        self.client = client or ModelClient(options.client, self.cache)
        self.daemons = DaemonManager(PortAllocator(options.ports))
        self.events = options.event_sink
        # Environment that lets tools prompt on this terminal; cleared when a UI owns prompts.
        self.extra_env: Dict[str, str] = (
            {"TOOLSCRIPT_PROMPT_TTY": "1"} if _stdin_is_tty() else {}
        )
        self._workspace: Optional[Path] = None
        self._owns_workspace = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    @property
    def workspace(self) -> Path:
        if self._workspace is None:
            if self.options.workspace:
                self._workspace = Path(self.options.workspace).resolve()
                self._workspace.mkdir(parents=True, exist_ok=True)
            else:
                self._workspace = Path(tempfile.mkdtemp(prefix="toolscript-workspace-"))
                self._owns_workspace = True
        return self._workspace

    async def close(self, graceful: bool = True) -> None:
        await self.daemons.close(graceful=graceful)
        await self.client.close()
        if self._owns_workspace and self._workspace is not None:
            shutil.rmtree(self._workspace, ignore_errors=True)
        self._workspace = None
        self._owns_workspace = False

    # ------------------------------------------------------------------ #
    # Listing
    # ------------------------------------------------------------------ #
    async def list_models(self, providers: Sequence[str] = ()) -> List[str]:
        if not providers:
            return await self.client.list_models()
        models: List[str] = []
        for provider in providers:
            for model in await self.client.list_models(provider):
                models.append(f"{model} from {provider}")
        return models

    def list_tools(self, program: Program) -> List[Tool]:
        """Declared tools in declaration order, or the built-ins for no program."""
        if program.is_empty:
            return list_builtin_tools()
        return program.tools()

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    async def run(self, program: Program, env: Mapping[str, str], input: str) -> str:
        tool = program.entry_tool
        if tool is None:
            raise ExecutionError("program has no entry tool")
        run_id = uuid.uuid4().hex
        self._emit("runStart", runID=run_id, program=program.name, blocking=program.blocking)
        try:
            output = await self._call_tool(run_id, program, tool, env, input, depth=0)
        except Exception as exc:
            self._emit("runFinish", runID=run_id, error=str(exc))
            raise
        self._emit("runFinish", runID=run_id, output=output)
        return output

    async def chat(
        self,
        prev_state: Optional[str],
        program: Program,
        env: Mapping[str, str],
        input: str,
    ) -> ChatResponse:
        """Run one chat turn. Non-chat tools run once and report ``done``."""
        tool = program.entry_tool
        if tool is None:
            raise ExecutionError("program has no entry tool")
        if not tool.chat or tool.instructions.startswith("#!"):
            output = await self.run(program, env, input)
            return ChatResponse(done=True, content=output, tool_id=tool.id)

        messages = _decode_state(prev_state)
        if not messages:
            messages = [{"role": "system", "content": tool.instructions}]
        if input:
            messages.append({"role": "user", "content": input})

        run_id = uuid.uuid4().hex
        self._emit("chatTurnStart", runID=run_id, toolID=tool.id)
        content, messages = await self._complete(run_id, program, tool, env, messages, 0)
        self._emit("chatTurnFinish", runID=run_id, toolID=tool.id, output=content)
        state = json.dumps({"toolID": tool.id, "messages": messages})
        return ChatResponse(done=False, content=content, tool_id=tool.id, state=state)

    async def _call_tool(
        self,
        run_id: str,
        program: Program,
        tool: Tool,
        env: Mapping[str, str],
        input: str,
        depth: int,
    ) -> str:
        if depth > _MAX_DEPTH:
            raise ExecutionError("maximum tool call depth exceeded", tool=tool.name)
        self._emit("callStart", runID=run_id, toolID=tool.id, input=input)
        instructions = tool.instructions
        if instructions.startswith("#!"):
            output = await self._call_command(tool, env, input)
        else:
            messages: List[Dict[str, Any]] = []
            if instructions:
                messages.append({"role": "system", "content": instructions})
            if input:
                messages.append({"role": "user", "content": input})
            output, _ = await self._complete(run_id, program, tool, env, messages, depth)
        self._emit("callFinish", runID=run_id, toolID=tool.id, output=output)
        return output

    async def _call_command(self, tool: Tool, env: Mapping[str, str], input: str) -> str:
        lines = tool.instructions[2:].splitlines()
        line = lines[0].strip() if lines else ""
        extra = self._credential_env(tool)
        ctx = CommandContext(
            env=env, workspace=self.workspace, authorizer=self.options.authorizer
        )
        if line.startswith(DAEMON_PREFIX + " "):
            return await self.daemons.call(
                ctx, tool, line[len(DAEMON_PREFIX) :].strip(), input, extra
            )
        head = line.split(maxsplit=1)[0] if line else ""
        if is_builtin(head):
            return await call_builtin(self._builtin_ctx(env), head, input)
        return await run_command(ctx, tool, line, input, extra)

    async def _complete(
        self,
        run_id: str,
        program: Program,
        tool: Tool,
        env: Mapping[str, str],
        messages: List[Dict[str, Any]],
        depth: int,
    ) -> Tuple[str, List[Dict[str, Any]]]:
        functions, by_fn_name = self._function_defs(program, tool)
        for _ in range(_MAX_TOOL_ROUNDS):
            if self.options.display.debug_messages:
                logger.info("request messages: %s", json.dumps(messages))
            message = await self.client.complete(
                messages, model=tool.model, tools=functions or None
            )
            if self.options.display.debug_messages:
                logger.info("response message: %s", json.dumps(message))
            messages.append(message)
            calls = message.get("tool_calls") or []
            if not calls:
                return str(message.get("content") or ""), messages
            for call in calls:
                fn = call.get("function") or {}
                target = by_fn_name.get(str(fn.get("name")))
                if target is None:
                    result = f"ERROR: unknown tool {fn.get('name')!r}"
                else:
                    result = await self._call_named(
                        run_id, program, target, env, str(fn.get("arguments") or ""), depth + 1
                    )
                messages.append(
                    {"role": "tool", "tool_call_id": call.get("id"), "content": result}
                )
        raise ExecutionError("too many tool call rounds", tool=tool.name)

    async def _call_named(
        self,
        run_id: str,
        program: Program,
        name: str,
        env: Mapping[str, str],
        input: str,
        depth: int,
    ) -> str:
        if is_builtin(name):
            return await call_builtin(self._builtin_ctx(env), name, input)
        target = program.find_tool(name)
        if target is None:
            raise ExecutionError(f"unknown tool {name!r}")
        return await self._call_tool(run_id, program, target, env, input, depth)

    def _function_defs(
        self, program: Program, tool: Tool
    ) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        functions: List[Dict[str, Any]] = []
        by_fn_name: Dict[str, str] = {}
        for ref in tool.tools:
            fn_name = _FN_NAME_RE.sub("_", ref)
            by_fn_name[fn_name] = ref
            if is_builtin(ref):
                description = next(
                    (t.description for t in list_builtin_tools() if t.name == ref), ""
                )
                parameters = builtin_parameters(ref)
            else:
                target = program.find_tool(ref)
                description = target.description if target else ""
                parameters = {
                    "type": "object",
                    "properties": {"input": {"type": "string"}},
                }
            functions.append(
                {
                    "type": "function",
                    "function": {
                        "name": fn_name,
                        "description": description,
                        "parameters": parameters,
                    },
                }
            )
        return functions, by_fn_name

    def _builtin_ctx(self, env: Mapping[str, str]) -> BuiltinContext:
        return BuiltinContext(
            env=env, workspace=self.workspace, authorizer=self.options.authorizer
        )

    def _credential_env(self, tool: Tool) -> Dict[str, str]:
        extra = dict(self.extra_env)
        extra["TOOLSCRIPT_CREDENTIAL_CONTEXT"] = self.options.credential_context
        extra["TOOLSCRIPT_WORKSPACE_DIR"] = str(self.workspace)
        for credential in tool.credentials:
            extra.update(self.options.credential_overrides.get(credential, {}))
        return extra

    def _emit(self, event_type: str, **data: Any) -> None:
        if self.events is not None:
            self.events.emit(event_type, data)


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def _decode_state(raw: Optional[str]) -> List[Dict[str, Any]]:
    """Decode a chat state, unwrapping a full chat response if given one."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExecutionError(f"invalid chat state: {exc}") from exc
    if isinstance(data, dict) and "state" in data and "messages" not in data:
        return _decode_state(data["state"])
    if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
        raise ExecutionError("invalid chat state: expected an object with messages")
    return list(data["messages"])
