"""Toolscript exception hierarchy."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ChatStateError",
    "ConfigurationError",
    "ExecutionError",
    "LoadError",
    "ToolscriptError",
]


class ToolscriptError(Exception):
    """Base class for toolscript exceptions."""


class ConfigurationError(ToolscriptError):
    """Raised when flags, environment or config files cannot be resolved."""


class LoadError(ToolscriptError):
    """Raised when a program cannot be found or parsed."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"loading {source}: {message}")
        self.source = source


class ChatStateError(ToolscriptError):
    """Raised when a prior chat state cannot be read."""


class ExecutionError(ToolscriptError):
    """Raised when a run, chat or server collaborator fails."""

    def __init__(self, message: str, *, tool: Optional[str] = None) -> None:
        super().__init__(message)
        self.tool = tool
