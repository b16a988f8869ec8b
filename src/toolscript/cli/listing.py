"""Rendering for ``--list-tools`` and ``--list-models``."""

from __future__ import annotations

import sys
from dataclasses import replace
from typing import Iterable, List, Optional, TextIO

from ..shared import Program, Tool

__all__ = ["TOOL_SEPARATOR", "format_models", "format_tool_listing", "print_listing", "sorted_tools"]

TOOL_SEPARATOR = "\n---\n"


def sorted_tools(tools: Iterable[Tool]) -> List[Tool]:
    """Tools by name ascending; equal names keep declaration order."""
    return sorted(tools, key=lambda tool: tool.name)


def format_tool_listing(program: Program, tools: Iterable[Tool]) -> str:
    entries = []
    for tool in sorted_tools(tools):
        if not tool.name:
            tool = replace(tool, name=program.name)
        entries.append(tool.render(include_instructions=False))
    return TOOL_SEPARATOR.join(entries)


def format_models(models: Iterable[str]) -> str:
    return "\n".join(models)


def print_listing(text: str, stdout: Optional[TextIO] = None) -> None:
    out = stdout or sys.stdout
    if text:
        out.write(text if text.endswith("\n") else text + "\n")
    out.flush()
