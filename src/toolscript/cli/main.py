#!/usr/bin/env python3
"""toolscript CLI entrypoint.

A thin shell: parse flags, apply the startup step, resolve options, and hand
off to the run orchestrator. Exit codes: 0 success, 1 load/execution/IO
failure, 2 configuration error or interruption.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import traceback
from typing import Final, List, Optional, TextIO

from rich.console import Console

from ..config import load_effective_config
from ..exceptions import ConfigurationError, ToolscriptError
from ..shared import CancellationToken
from .options import resolve_runtime_options
from .orchestrator import RunOrchestrator
from .parser import create_parser
from .startup import StartupContext, apply_startup

__all__: Final = ["main", "run_cli"]


async def _run(
    args: argparse.Namespace,
    parser: argparse.ArgumentParser,
    startup: StartupContext,
    stdout: Optional[TextIO],
) -> int:
    config = load_effective_config(args, startup.env)
    options = resolve_runtime_options(
        args, startup.env, quiet=startup.quiet, config=config
    )
    token = CancellationToken()
    orchestrator = RunOrchestrator(
        args,
        startup,
        options,
        config=config,
        token=token,
        print_help=lambda: parser.print_help(stdout),
        stdout=stdout,
    )
    task = asyncio.ensure_future(orchestrator.run())

    def _interrupt() -> None:
        # Holding modes exit cleanly once the token is cancelled.
        if not orchestrator.holding:
            task.cancel()

    token.install_signal_handlers(asyncio.get_running_loop(), on_signal=_interrupt)
    try:
        return await task
    finally:
        if options.event_sink is not None:
            options.event_sink.close()


def _report(console: Console, message: str, debug: bool) -> None:
    console.print(f"[red]error:[/red] {message}", markup=True, highlight=False)
    if debug:
        console.print(traceback.format_exc(), markup=False)


def run_cli(
    argv: Optional[List[str]] = None,
    *,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    debug = bool(getattr(args, "debug", False))
    console = Console(file=stderr or sys.stderr, highlight=False)
    try:
        startup = apply_startup(args, stdout=stdout, stderr=stderr)
        console = startup.console
        return asyncio.run(_run(args, parser, startup, stdout))
    except (ConfigurationError, ValueError) as e:
        _report(console, str(e), debug)
        return 2
    except (ToolscriptError, OSError) as e:
        _report(console, str(e), debug)
        return 1
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Interrupted[/yellow]")
        return 2


def main() -> None:
    """CLI entrypoint."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
