"""Command-line front end: option resolution, mode selection, orchestration."""

from toolscript.cli.main import main, run_cli
from toolscript.cli.modes import ExecutionMode, ModeInputs, preload_mode, select_mode
from toolscript.cli.orchestrator import RunOrchestrator

__all__ = [
    "ExecutionMode",
    "ModeInputs",
    "RunOrchestrator",
    "main",
    "preload_mode",
    "run_cli",
    "select_mode",
]
