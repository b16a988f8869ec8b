"""Command and daemon tool execution."""

from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import aiohttp

from ..exceptions import ExecutionError
from ..shared import Authorizer, Tool
from .auth import ABORTED_BY_USER
from .builtins import parse_tool_input
from .ports import PortAllocator

__all__ = ["CommandContext", "DaemonManager", "run_command", "tool_env"]

logger = logging.getLogger(__name__)

DAEMON_PREFIX = "sys.daemon"
_DAEMON_READY_TIMEOUT_S = 10.0
_DAEMON_POLL_INTERVAL_S = 0.1


@dataclass(frozen=True)
class CommandContext:
    env: Mapping[str, str]
    workspace: Path
    authorizer: Optional[Authorizer] = None


def tool_env(base: Mapping[str, str], raw_input: str, extra: Mapping[str, str]) -> Dict[str, str]:
    """Environment for a command tool: base env, credentials, and input args."""
    env = dict(base)
    env.update(extra)
    env["TOOLSCRIPT_INPUT"] = raw_input
    for key, value in parse_tool_input(raw_input).items():
        if key == "input":
            continue
        env_key = key.upper().replace("-", "_")
        if env_key.isidentifier():
            env[env_key] = value if isinstance(value, str) else str(value)
    return env


async def run_command(
    ctx: CommandContext,
    tool: Tool,
    command_line: str,
    raw_input: str,
    extra_env: Mapping[str, str],
) -> str:
    """Run ``command_line`` for ``tool``; the input is also fed on stdin."""
    argv = shlex.split(command_line)
    if not argv:
        raise ExecutionError("empty command", tool=tool.name or tool.id)
    if ctx.authorizer is not None:
        if not await ctx.authorizer(f"Run command: {command_line}"):
            logger.info("command denied: %s", command_line)
            return ABORTED_BY_USER

    env = tool_env(ctx.env, raw_input, extra_env)
    logger.debug("running command tool %s: %s", tool.name or tool.id, argv)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(ctx.workspace),
            env=env,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ExecutionError(f"starting {argv[0]}: {exc}", tool=tool.name) from exc
    out, err = await proc.communicate(raw_input.encode("utf-8"))
    if proc.returncode != 0:
        raise ExecutionError(
            f"command {argv[0]} exited with status {proc.returncode}: "
            f"{err.decode('utf-8', errors='replace').strip()}",
            tool=tool.name or tool.id,
        )
    return out.decode("utf-8", errors="replace")


class DaemonManager:
    """Starts long-lived HTTP tool services and forwards calls to them."""

    def __init__(self, ports: PortAllocator) -> None:
        self.ports = ports
        self._daemons: Dict[str, Tuple[asyncio.subprocess.Process, int]] = {}
        self._lock = asyncio.Lock()

    async def call(
        self,
        ctx: CommandContext,
        tool: Tool,
        command_line: str,
        raw_input: str,
        extra_env: Mapping[str, str],
    ) -> str:
        port = await self._ensure_started(ctx, tool, command_line, extra_env)
        url = f"http://127.0.0.1:{port}/"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, data=raw_input.encode("utf-8")) as resp:
                    body = await resp.text()
                    if resp.status >= 400:
                        raise ExecutionError(
                            f"daemon {tool.name or tool.id} returned HTTP {resp.status}: {body}",
                            tool=tool.name,
                        )
                    return body
        except aiohttp.ClientError as exc:
            raise ExecutionError(
                f"calling daemon {tool.name or tool.id}: {exc}", tool=tool.name
            ) from exc

    async def _ensure_started(
        self,
        ctx: CommandContext,
        tool: Tool,
        command_line: str,
        extra_env: Mapping[str, str],
    ) -> int:
        async with self._lock:
            existing = self._daemons.get(tool.id)
            if existing and existing[0].returncode is None:
                return existing[1]

            argv = shlex.split(command_line)
            if not argv:
                raise ExecutionError("empty daemon command", tool=tool.name)
            if ctx.authorizer is not None:
                if not await ctx.authorizer(f"Start daemon: {command_line}"):
                    raise ExecutionError(ABORTED_BY_USER, tool=tool.name)

            port = self.ports.allocate()
            env = dict(ctx.env)
            env.update(extra_env)
            env["PORT"] = str(port)
            logger.info("starting daemon %s on port %d", tool.name or tool.id, port)
            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv, cwd=str(ctx.workspace), env=env
                )
            except OSError as exc:
                self.ports.release(port)
                raise ExecutionError(
                    f"starting daemon {argv[0]}: {exc}", tool=tool.name
                ) from exc
            self._daemons[tool.id] = (proc, port)
            await _wait_for_port(proc, port)
            return port

    async def close(self, graceful: bool = True) -> None:
        daemons: List[Tuple[asyncio.subprocess.Process, int]] = list(
            self._daemons.values()
        )
        self._daemons.clear()
        for proc, port in daemons:
            if proc.returncode is None and not graceful:
                proc.kill()
                await proc.wait()
            elif proc.returncode is None:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=5.0)
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()
            self.ports.release(port)


async def _wait_for_port(proc: asyncio.subprocess.Process, port: int) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + _DAEMON_READY_TIMEOUT_S
    while loop.time() < deadline:
        if proc.returncode is not None:
            raise ExecutionError(f"daemon exited with status {proc.returncode}")
        try:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
        except OSError:
            await asyncio.sleep(_DAEMON_POLL_INTERVAL_S)
            continue
        writer.close()
        await writer.wait_closed()
        return
    raise ExecutionError(f"daemon did not listen on port {port} in time")
