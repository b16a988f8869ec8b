"""Built-in ``sys.*`` tools available to every program."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..exceptions import ExecutionError
from ..shared import Authorizer, Tool
from .auth import ABORTED_BY_USER

__all__ = [
    "BUILTIN_PREFIX",
    "BuiltinContext",
    "builtin_parameters",
    "call_builtin",
    "describe_action",
    "is_builtin",
    "list_builtin_tools",
    "parse_tool_input",
]

logger = logging.getLogger(__name__)

BUILTIN_PREFIX = "sys."


@dataclass(frozen=True)
class BuiltinContext:
    env: Mapping[str, str]
    workspace: Path
    authorizer: Optional[Authorizer] = None


BuiltinImpl = Callable[[BuiltinContext, Dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True)
class _Builtin:
    tool: Tool
    impl: BuiltinImpl
    dangerous: bool = False
    parameters: Optional[Dict[str, Any]] = None


def parse_tool_input(raw: str) -> Dict[str, Any]:
    """Interpret tool input as a JSON object, else as ``{"input": raw}``."""
    text = raw.strip()
    if text.startswith("{"):
        try:
            value = json.loads(text)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
    return {"input": raw}


def _resolve(ctx: BuiltinContext, filename: str) -> Path:
    path = Path(filename).expanduser()
    return path if path.is_absolute() else ctx.workspace / path


async def _echo(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    return str(args.get("input", ""))


async def _time_now(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    return datetime.now(timezone.utc).isoformat()


async def _getenv(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    name = str(args.get("name") or args.get("input") or "").strip()
    return ctx.env.get(name, "")


async def _read(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    filename = str(args.get("filename") or args.get("input") or "").strip()
    if not filename:
        raise ExecutionError("sys.read: filename is required", tool="sys.read")
    try:
        return _resolve(ctx, filename).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ExecutionError(f"sys.read: {exc}", tool="sys.read") from exc


async def _write(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    filename = str(args.get("filename") or "").strip()
    if not filename:
        raise ExecutionError("sys.write: filename is required", tool="sys.write")
    path = _resolve(ctx, filename)
    content = str(args.get("content", ""))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise ExecutionError(f"sys.write: {exc}", tool="sys.write") from exc
    return f"Wrote {len(content)} bytes to {path}"


async def _exec(ctx: BuiltinContext, args: Dict[str, Any]) -> str:
    command = str(args.get("command") or args.get("input") or "").strip()
    if not command:
        raise ExecutionError("sys.exec: command is required", tool="sys.exec")
    directory = args.get("directory") or str(ctx.workspace)
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=directory,
        env=dict(ctx.env),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    out, _ = await proc.communicate()
    text = out.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        raise ExecutionError(
            f"sys.exec: exit status {proc.returncode}: {text.strip()}", tool="sys.exec"
        )
    return text


def _string_params(**props: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {k: {"type": "string", "description": v} for k, v in props.items()},
    }


_BUILTINS: Dict[str, _Builtin] = {
    b.tool.name: b
    for b in (
        _Builtin(
            Tool(id="sys.echo", name="sys.echo", description="Returns the input"),
            _echo,
            parameters=_string_params(input="Text to echo"),
        ),
        _Builtin(
            Tool(
                id="sys.time.now",
                name="sys.time.now",
                description="Returns the current date and time in RFC 3339 format",
            ),
            _time_now,
            parameters=_string_params(),
        ),
        _Builtin(
            Tool(
                id="sys.getenv",
                name="sys.getenv",
                description="Gets the value of an environment variable",
            ),
            _getenv,
            parameters=_string_params(name="The environment variable name"),
        ),
        _Builtin(
            Tool(
                id="sys.read",
                name="sys.read",
                description="Reads the contents of a file",
            ),
            _read,
            parameters=_string_params(filename="The file to read"),
        ),
        _Builtin(
            Tool(
                id="sys.write",
                name="sys.write",
                description="Write the contents to a file",
            ),
            _write,
            dangerous=True,
            parameters=_string_params(
                filename="The file to write to", content="The content to write"
            ),
        ),
        _Builtin(
            Tool(
                id="sys.exec",
                name="sys.exec",
                description="Execute a command and get the output of the command",
            ),
            _exec,
            dangerous=True,
            parameters=_string_params(
                command="The command to run including all arguments",
                directory="The directory to run the command in",
            ),
        ),
    )
}


def is_builtin(name: str) -> bool:
    return name in _BUILTINS


def list_builtin_tools() -> List[Tool]:
    return [b.tool for b in _BUILTINS.values()]


def builtin_parameters(name: str) -> Dict[str, Any]:
    return dict(_BUILTINS[name].parameters or _string_params())


def describe_action(name: str, args: Dict[str, Any]) -> str:
    details = ", ".join(f"{k}={v!r}" for k, v in sorted(args.items()))
    return f"{name}({details})"


async def call_builtin(ctx: BuiltinContext, name: str, raw_input: str) -> str:
    """Invoke a built-in tool, consulting the authorizer for dangerous ones.

    A denied action returns ``ABORTED BY USER`` as the tool output; the rest
    of the run continues.
    """
    builtin = _BUILTINS.get(name)
    if builtin is None:
        raise ExecutionError(f"unknown built-in tool {name!r}", tool=name)
    args = parse_tool_input(raw_input)
    if builtin.dangerous and ctx.authorizer is not None:
        if not await ctx.authorizer(describe_action(name, args)):
            logger.info("action denied: %s", name)
            return ABORTED_BY_USER
    return await builtin.impl(ctx, args)
