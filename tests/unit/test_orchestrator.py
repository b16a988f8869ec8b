from __future__ import annotations

import asyncio
import json
from argparse import Namespace
from io import StringIO
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Tuple

import pytest
from rich.console import Console

from toolscript.cli.modes import ExecutionMode
from toolscript.cli.orchestrator import RunOrchestrator
from toolscript.cli.startup import StartupContext
from toolscript.engine import list_builtin_tools
from toolscript.exceptions import ConfigurationError, ExecutionError
from toolscript.program import StdinCache, parse_program
from toolscript.shared import CancellationToken, ChatResponse, Program, RuntimeOptions

CHAT_DOC = "name: bot\nchat: true\ninstructions: be nice\n"
PLAIN_DOC = "name: runner\ninstructions: do the thing\n"


def _console() -> Console:
    return Console(file=StringIO(), force_terminal=False, color_system=None)


def _args(**overrides) -> Namespace:
    base = dict(
        args=[],
        server=False,
        listen_address=None,
        list_models=False,
        list_tools=False,
        assemble=False,
        daemon=False,
        ui=False,
        force_chat=False,
        save_chat_state_file="",
        chat_state="",
        sub_tool="",
        input=None,
        output=None,
        disable_tui=True,
        debug=False,
        debug_messages=False,
    )
    base.update(overrides)
    return Namespace(**base)


def _startup(tmp_path: Path, quiet: bool = True, **env: str) -> StartupContext:
    return StartupContext(
        cwd=tmp_path,
        env=MappingProxyType({"TOOLSCRIPT_BIN": "/usr/bin/toolscript", **env}),
        quiet=quiet,
        color=False,
        console=_console(),
    )


class FakeEngine:
    def __init__(self, result: str = "ok", fail: Optional[Exception] = None) -> None:
        self.result = result
        self.fail = fail
        self.runs: List[Tuple[Program, Dict[str, str], str]] = []
        self.chats: List[Tuple[Optional[str], Program, str]] = []
        self.extra_env: Dict[str, str] = {"TOOLSCRIPT_PROMPT_TTY": "1"}
        self.closed = False

    async def run(self, program, env, input):
        self.runs.append((program, dict(env), input))
        if self.fail:
            raise self.fail
        return self.result

    async def chat(self, prev_state, program, env, input):
        self.chats.append((prev_state, program, input))
        turn = 1
        if prev_state:
            turn = json.loads(prev_state)["turn"] + 1
        return ChatResponse(
            done=False,
            content=f"reply {turn}",
            tool_id=program.entry_tool_id,
            state=json.dumps({"turn": turn}),
        )

    async def list_models(self, providers=()):
        return ["m-b", "m-a"] if not providers else [f"x from {p}" for p in providers]

    def list_tools(self, program):
        return list_builtin_tools() if program.is_empty else program.tools()

    async def close(self, graceful=True):
        self.closed = True


class FakeLoader:
    def __init__(self, programs: Dict[str, str]) -> None:
        self.programs = programs
        self.references: List[str] = []
        self.sources: List[str] = []

    async def from_source(self, content, sub_tool="", location="stdin"):
        self.sources.append(content)
        return parse_program(content, sub_tool, location)

    async def from_reference(self, reference, sub_tool=""):
        self.references.append(reference)
        return parse_program(self.programs[reference], sub_tool, reference)


class FakeServer:
    def __init__(self, address: str, options: RuntimeOptions) -> None:
        self.address = address
        self.options = options
        self.started = False

    async def start(self, token: CancellationToken) -> None:
        self.started = True
        await token.wait()


def _orchestrator(
    tmp_path: Path,
    args: Namespace,
    *,
    engine: Optional[FakeEngine] = None,
    programs: Optional[Dict[str, str]] = None,
    stdin: bytes = b"",
    token: Optional[CancellationToken] = None,
    quiet: bool = True,
    env: Optional[Dict[str, str]] = None,
    **kwargs: Any,
) -> Tuple[RunOrchestrator, FakeEngine, FakeLoader, StringIO, StringIO]:
    engine = engine or FakeEngine()
    loader = FakeLoader(programs or {})
    out, err = StringIO(), StringIO()
    orchestrator = RunOrchestrator(
        args,
        _startup(tmp_path, quiet=quiet, **(env or {})),
        RuntimeOptions(),
        token=token or CancellationToken(),
        engine=engine,
        loader=loader,
        stdin=StdinCache(lambda: stdin),
        stdout=out,
        stderr=err,
        **kwargs,
    )
    return orchestrator, engine, loader, out, err


@pytest.mark.asyncio
async def test_stdin_json_scenario_is_single_plain_run(tmp_path) -> None:
    args = _args(args=["-", ""])
    orch, engine, loader, out, _ = _orchestrator(tmp_path, args, stdin=b'{"url":"x"}"')

    assert await orch.run() == 0

    assert orch.mode is ExecutionMode.PLAIN_RUN
    assert len(engine.runs) == 1
    program, env, input_text = engine.runs[0]
    assert input_text == ""
    assert program.entry_tool.instructions == '{"url":"x"}"'
    assert env["TOOLSCRIPT_BIN"] == "/usr/bin/toolscript"
    assert out.getvalue() == "ok\n"
    assert engine.closed


@pytest.mark.asyncio
async def test_server_wins_and_loads_nothing(tmp_path) -> None:
    servers: List[FakeServer] = []

    def factory(address, options):
        server = FakeServer(address, options)
        servers.append(server)
        return server

    args = _args(server=True, list_models=True, listen_address="127.0.0.1:9999", args=["x"])
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path,
        args,
        token=CancellationToken(cancelled=True),
        server_factory=factory,
    )

    assert await orch.run() == 0
    assert orch.mode is ExecutionMode.SERVER
    assert servers[0].started and servers[0].address == "127.0.0.1:9999"
    assert loader.references == [] and loader.sources == []
    assert engine.runs == []


@pytest.mark.asyncio
async def test_server_address_falls_back_to_config(tmp_path) -> None:
    seen: List[str] = []

    def factory(address, options):
        seen.append(address)
        return FakeServer(address, options)

    orch, *_ = _orchestrator(
        tmp_path,
        _args(server=True),
        token=CancellationToken(cancelled=True),
        server_factory=factory,
        config={"server": {"listen_address": "0.0.0.0:8123"}},
    )
    await orch.run()
    assert seen == ["0.0.0.0:8123"]


@pytest.mark.asyncio
async def test_list_models_without_program(tmp_path) -> None:
    orch, engine, loader, out, _ = _orchestrator(tmp_path, _args(list_models=True))
    assert await orch.run() == 0
    assert out.getvalue() == "m-b\nm-a\n"
    assert loader.references == []


@pytest.mark.asyncio
async def test_list_models_with_providers(tmp_path) -> None:
    orch, _, _, out, _ = _orchestrator(
        tmp_path, _args(list_models=True, args=["http://p1"])
    )
    await orch.run()
    assert out.getvalue() == "x from http://p1\n"


@pytest.mark.asyncio
async def test_no_args_prints_help(tmp_path) -> None:
    shown: List[bool] = []
    orch, engine, _, _, _ = _orchestrator(
        tmp_path, _args(), print_help=lambda: shown.append(True)
    )
    assert await orch.run() == 0
    assert orch.mode is ExecutionMode.HELP
    assert shown == [True]
    assert engine.runs == []


@pytest.mark.asyncio
async def test_list_tools_without_program_lists_builtins(tmp_path) -> None:
    orch, _, _, out, _ = _orchestrator(tmp_path, _args(list_tools=True))
    assert await orch.run() == 0
    assert "Name: sys.echo" in out.getvalue()


@pytest.mark.asyncio
async def test_list_tools_does_not_execute(tmp_path) -> None:
    orch, engine, _, out, _ = _orchestrator(
        tmp_path,
        _args(list_tools=True, args=["p.yaml"]),
        programs={"p.yaml": PLAIN_DOC},
    )
    await orch.run()
    assert out.getvalue().startswith("Name: runner")
    assert "do the thing" not in out.getvalue()
    assert engine.runs == []


@pytest.mark.asyncio
async def test_daemon_marks_blocking_and_waits_for_cancellation(tmp_path) -> None:
    token = CancellationToken()
    orch, engine, _, out, _ = _orchestrator(
        tmp_path,
        _args(daemon=True, args=["p.yaml", "go"]),
        programs={"p.yaml": PLAIN_DOC},
        token=token,
    )

    task = asyncio.ensure_future(orch.run())
    for _ in range(50):
        if orch.holding:
            break
        await asyncio.sleep(0.01)

    assert orch.holding
    assert not task.done()
    assert out.getvalue() == "ok\n"
    program, _, input_text = engine.runs[0]
    assert program.blocking is True
    assert input_text == "go"

    token.cancel()
    assert await asyncio.wait_for(task, timeout=1) == 0
    assert orch.mode is ExecutionMode.DAEMON_RUN
    assert not orch.holding


@pytest.mark.asyncio
async def test_daemon_with_precancelled_token_returns_promptly(tmp_path) -> None:
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(daemon=True, args=["p.yaml"]),
        programs={"p.yaml": PLAIN_DOC},
        token=CancellationToken(cancelled=True),
    )
    assert await asyncio.wait_for(orch.run(), timeout=1) == 0
    assert engine.runs[0][0].blocking


@pytest.mark.asyncio
async def test_plain_run_does_not_wait(tmp_path) -> None:
    orch, engine, _, _, _ = _orchestrator(
        tmp_path, _args(args=["p.yaml", "a", "b"]), programs={"p.yaml": PLAIN_DOC}
    )
    assert await asyncio.wait_for(orch.run(), timeout=1) == 0
    assert engine.runs[0][2] == "a b"
    assert engine.runs[0][0].blocking is False


@pytest.mark.asyncio
async def test_input_file_takes_precedence(tmp_path) -> None:
    input_file = tmp_path / "input.txt"
    input_file.write_text("from file", encoding="utf-8")
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(args=["p.yaml", "ignored"], input=str(input_file)),
        programs={"p.yaml": PLAIN_DOC},
    )
    await orch.run()
    assert engine.runs[0][2] == "from file"


@pytest.mark.asyncio
async def test_input_from_stdin_uses_cache(tmp_path) -> None:
    reads: List[int] = []

    def reader() -> bytes:
        reads.append(1)
        return b"piped input"

    engine = FakeEngine()
    orch = RunOrchestrator(
        _args(args=["p.yaml"], input="-"),
        _startup(tmp_path),
        RuntimeOptions(),
        engine=engine,
        loader=FakeLoader({"p.yaml": PLAIN_DOC}),
        stdin=StdinCache(reader),
        stdout=StringIO(),
        stderr=StringIO(),
    )
    await orch.run()
    assert engine.runs[0][2] == "piped input"
    assert reads == [1]


@pytest.mark.asyncio
async def test_execution_error_propagates_without_output(tmp_path) -> None:
    engine = FakeEngine(fail=ExecutionError("boom"))
    orch, _, _, out, err = _orchestrator(
        tmp_path,
        _args(args=["p.yaml"]),
        engine=engine,
        programs={"p.yaml": PLAIN_DOC},
        quiet=False,
    )
    with pytest.raises(ExecutionError):
        await orch.run()
    assert out.getvalue() == ""
    assert err.getvalue() == ""
    assert engine.closed


@pytest.mark.asyncio
async def test_assemble_writes_artifact(tmp_path) -> None:
    target = tmp_path / "artifact.json"
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(assemble=True, args=["p.yaml"], output=str(target)),
        programs={"p.yaml": PLAIN_DOC},
    )
    await orch.run()
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["name"] == "p.yaml"
    assert engine.runs == [] and engine.chats == []


@pytest.mark.asyncio
async def test_assemble_to_stdout(tmp_path) -> None:
    orch, _, _, out, _ = _orchestrator(
        tmp_path, _args(assemble=True, args=["p.yaml"]), programs={"p.yaml": PLAIN_DOC}
    )
    await orch.run()
    assert json.loads(out.getvalue())["entryToolId"]


@pytest.mark.asyncio
async def test_stateless_chat_round_trip_through_output_file(tmp_path) -> None:
    state_file = tmp_path / "turn.json"
    programs = {"bot.yaml": CHAT_DOC}

    first, engine1, _, _, _ = _orchestrator(
        tmp_path,
        _args(args=["bot.yaml", "hi"], save_chat_state_file="-", output=str(state_file)),
        programs=programs,
    )
    await first.run()
    assert first.mode is ExecutionMode.STATELESS_CHAT
    turn1 = json.loads(state_file.read_text(encoding="utf-8"))
    assert turn1["content"] == "reply 1"

    second, engine2, _, _, _ = _orchestrator(
        tmp_path,
        _args(
            args=["bot.yaml", "again"],
            save_chat_state_file="stdout",
            chat_state=turn1["state"],
            output=str(state_file),
        ),
        programs=programs,
    )
    await second.run()
    assert engine2.chats[0][0] == turn1["state"]
    assert json.loads(state_file.read_text(encoding="utf-8"))["content"] == "reply 2"


class _ScriptedIO:
    def __init__(self, lines: List[Optional[str]]) -> None:
        self.lines = list(lines)
        self.shown: List[str] = []

    async def read(self) -> Optional[str]:
        return self.lines.pop(0) if self.lines else None

    def show(self, response: ChatResponse) -> None:
        self.shown.append(response.content)


@pytest.mark.asyncio
async def test_interactive_chat_saves_state(tmp_path) -> None:
    save = tmp_path / "state.json"
    io = _ScriptedIO(["more", None])
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(args=["bot.yaml"], save_chat_state_file=str(save)),
        programs={"bot.yaml": CHAT_DOC},
        chat_io=io,
    )
    assert await orch.run() == 0
    assert orch.mode is ExecutionMode.INTERACTIVE_CHAT
    assert io.shown == ["reply 1", "reply 2"]
    assert json.loads(save.read_text(encoding="utf-8")) == {"turn": 2}


@pytest.mark.asyncio
async def test_forced_chat_wins_over_ui(tmp_path) -> None:
    io = _ScriptedIO([None])
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path,
        _args(args=["p.yaml"], force_chat=True, ui=True),
        programs={"p.yaml": PLAIN_DOC},
        chat_io=io,
    )
    await orch.run()
    assert orch.mode is ExecutionMode.INTERACTIVE_CHAT
    assert loader.references == ["p.yaml"]


@pytest.mark.asyncio
async def test_ui_bootstrap_rewrites_args_and_env(tmp_path) -> None:
    scripts = tmp_path / "scripts"
    scripts.mkdir()
    ui_tool = "github.com/acme/chat-ui"
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path,
        _args(args=["scripts/p.yaml", "extra"], ui=True),
        programs={"scripts/p.yaml": PLAIN_DOC, ui_tool: PLAIN_DOC},
        token=CancellationToken(cancelled=True),
        env={"TOOLSCRIPT_CHAT_UI_TOOL": ui_tool},
    )

    assert await orch.run() == 0

    assert orch.mode is ExecutionMode.UI_BOOTSTRAP
    assert loader.references == ["scripts/p.yaml", ui_tool]
    program, env, input_text = engine.runs[0]
    assert program.blocking is True
    assert input_text == "--file=p.yaml extra"
    assert env["SCRIPTS_PATH"] == str(scripts)
    assert env["TOOLSCRIPT_BIN"] == "/usr/bin/toolscript"
    assert engine.extra_env == {}


@pytest.mark.asyncio
async def test_ui_bootstrap_uses_configured_tool(tmp_path) -> None:
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path,
        _args(args=["p.yaml"], ui=True),
        programs={"p.yaml": PLAIN_DOC, "my/ui": PLAIN_DOC},
        token=CancellationToken(cancelled=True),
        config={"ui": {"tool": "my/ui"}},
    )
    await orch.run()
    assert loader.references[-1] == "my/ui"


@pytest.mark.asyncio
async def test_ui_bootstrap_rejects_stdin_script(tmp_path) -> None:
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(args=["-"], ui=True),
        stdin=b"name: p\ninstructions: x\n",
        token=CancellationToken(cancelled=True),
    )
    with pytest.raises(ConfigurationError) as exc:
        await orch.run()
    assert "cannot read from stdin" in str(exc.value)
    assert engine.runs == []


@pytest.mark.asyncio
async def test_not_quiet_echoes_input(tmp_path) -> None:
    orch, _, _, out, err = _orchestrator(
        tmp_path,
        _args(args=["p.yaml", "question"]),
        programs={"p.yaml": PLAIN_DOC},
        quiet=False,
    )
    await orch.run()
    assert "INPUT:\n\nquestion\n" in err.getvalue()
    assert out.getvalue() == "ok\n"


async def _until_holding(orch: RunOrchestrator, task: "asyncio.Future[int]") -> None:
    for _ in range(50):
        if orch.holding or task.done():
            break
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_daemon_holds_after_list_tools(tmp_path) -> None:
    token = CancellationToken()
    orch, engine, _, out, _ = _orchestrator(
        tmp_path,
        _args(daemon=True, list_tools=True, args=["p.yaml"]),
        programs={"p.yaml": PLAIN_DOC},
        token=token,
    )

    task = asyncio.ensure_future(orch.run())
    await _until_holding(orch, task)

    assert not task.done()
    assert orch.holding
    assert out.getvalue().startswith("Name: runner")
    assert engine.runs == []

    token.cancel()
    assert await asyncio.wait_for(task, timeout=1) == 0
    assert orch.mode is ExecutionMode.LIST_TOOLS


@pytest.mark.asyncio
async def test_daemon_holds_after_chat_program(tmp_path) -> None:
    token = CancellationToken()
    io = _ScriptedIO([None])
    orch, engine, _, _, _ = _orchestrator(
        tmp_path,
        _args(daemon=True, args=["bot.yaml"]),
        programs={"bot.yaml": CHAT_DOC},
        token=token,
        chat_io=io,
    )

    task = asyncio.ensure_future(orch.run())
    await _until_holding(orch, task)

    assert not task.done()
    assert io.shown == ["reply 1"]
    assert engine.chats[0][1].blocking is True

    token.cancel()
    assert await asyncio.wait_for(task, timeout=1) == 0
    assert orch.mode is ExecutionMode.INTERACTIVE_CHAT


@pytest.mark.asyncio
async def test_daemon_failure_does_not_hold(tmp_path) -> None:
    orch, _, _, _, _ = _orchestrator(
        tmp_path,
        _args(daemon=True, args=["p.yaml"]),
        engine=FakeEngine(fail=ExecutionError("boom")),
        programs={"p.yaml": PLAIN_DOC},
        token=CancellationToken(),
    )
    with pytest.raises(ExecutionError):
        await asyncio.wait_for(orch.run(), timeout=1)
    assert not orch.holding


@pytest.mark.asyncio
async def test_chat_reacquires_program_from_reference(tmp_path) -> None:
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path,
        _args(args=["bot.yaml"]),
        programs={"bot.yaml": CHAT_DOC},
        chat_io=_ScriptedIO([None]),
    )
    await orch.run()
    assert loader.references == ["bot.yaml", "bot.yaml"]
    assert engine.chats[0][1].name == "bot.yaml"


@pytest.mark.asyncio
async def test_chat_reacquires_stdin_program_from_cache(tmp_path) -> None:
    reads: List[int] = []

    def reader() -> bytes:
        reads.append(1)
        return CHAT_DOC.encode("utf-8")

    engine = FakeEngine()
    loader = FakeLoader({})
    orch = RunOrchestrator(
        _args(args=["-"]),
        _startup(tmp_path),
        RuntimeOptions(),
        engine=engine,
        loader=loader,
        stdin=StdinCache(reader),
        chat_io=_ScriptedIO([None]),
        stdout=StringIO(),
        stderr=StringIO(),
    )
    assert await orch.run() == 0
    assert orch.mode is ExecutionMode.INTERACTIVE_CHAT
    assert loader.sources == [CHAT_DOC, CHAT_DOC]
    assert reads == [1]


@pytest.mark.asyncio
async def test_ui_without_script_shows_help(tmp_path) -> None:
    shown: List[bool] = []
    orch, engine, loader, _, _ = _orchestrator(
        tmp_path, _args(ui=True), print_help=lambda: shown.append(True)
    )
    assert await asyncio.wait_for(orch.run(), timeout=1) == 0
    assert orch.mode is ExecutionMode.HELP
    assert shown == [True]
    assert engine.runs == [] and loader.references == []
