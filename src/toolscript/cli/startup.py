"""One-time startup step applied before any mode logic.

Changing directory is the only process-wide mutation. Everything else is
captured in a ``StartupContext`` that is passed explicitly to every later
step, so nothing downstream reads ``os.environ`` or the terminal directly.
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional, TextIO

from rich.console import Console

from ..exceptions import ConfigurationError
from ..shared.options import DEFAULT_MODEL
from ..utils.structured_logging import setup_logging
from ..version import PROGRAM_NAME

__all__ = ["BIN_ENV", "StartupContext", "apply_startup", "binary_location"]

logger = logging.getLogger(__name__)

BIN_ENV = "TOOLSCRIPT_BIN"


@dataclass(frozen=True)
class StartupContext:
    cwd: Path
    env: Mapping[str, str]
    quiet: bool
    color: bool
    console: Console


def binary_location() -> str:
    found = shutil.which(PROGRAM_NAME)
    if found:
        return found
    return str(Path(sys.argv[0]).resolve()) if sys.argv and sys.argv[0] else PROGRAM_NAME


def _isatty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def apply_startup(
    args: argparse.Namespace,
    *,
    environ: Optional[Mapping[str, str]] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    configure_logging: bool = True,
) -> StartupContext:
    """Change directory, snapshot the environment, and set up logging."""
    chdir = getattr(args, "chdir", None)
    if chdir:
        try:
            os.chdir(chdir)
        except OSError as exc:
            raise ConfigurationError(f"failed to change directory to {chdir}: {exc}") from exc

    env = dict(os.environ if environ is None else environ)
    env.setdefault(BIN_ENV, binary_location())

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    tty = _isatty(out)
    quiet = getattr(args, "quiet", None)
    if quiet is None:
        quiet = not tty
    color = getattr(args, "color", None)
    if color is None:
        color = tty

    if configure_logging:
        log_file = getattr(args, "log_file", None) or env.get("TOOLSCRIPT_LOG_FILE")
        setup_logging(
            debug=bool(getattr(args, "debug", False)),
            quiet=bool(quiet),
            truncate=not getattr(args, "no_trunc", False),
            log_file=Path(log_file) if log_file else None,
            stream=err,
        )

    console = Console(file=err, no_color=not color, highlight=False)

    model = getattr(args, "default_model", None)
    if model and model != DEFAULT_MODEL:
        logger.warning(
            "changing the default model can have unknown behavior for existing tools; "
            "set the model per tool instead"
        )

    return StartupContext(
        cwd=Path.cwd(),
        env=MappingProxyType(env),
        quiet=bool(quiet),
        color=bool(color),
        console=console,
    )
