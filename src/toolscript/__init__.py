"""toolscript: run tool scripts as one-shot programs, chats, daemons, or a server."""

from toolscript.exceptions import (
    ChatStateError,
    ConfigurationError,
    ExecutionError,
    LoadError,
    ToolscriptError,
)
from toolscript.shared import EMPTY_PROGRAM, Program, RuntimeOptions, Tool
from toolscript.version import __version__

__all__ = [
    "ChatStateError",
    "ConfigurationError",
    "EMPTY_PROGRAM",
    "ExecutionError",
    "LoadError",
    "Program",
    "RuntimeOptions",
    "Tool",
    "ToolscriptError",
    "__version__",
]
