"""Execution mode selection.

The precedence between modes is an ordered rule table: the first rule whose
predicate matches wins. Rules that do not need a program are evaluated
before the program is loaded, so server and model listing work without a
valid program argument.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from ..chat.state import is_stateless_target
from ..shared import Program

__all__ = [
    "ExecutionMode",
    "ModeInputs",
    "ModeRule",
    "MODE_RULES",
    "preload_mode",
    "select_mode",
]


class ExecutionMode(str, Enum):
    SERVER = "server"
    LIST_MODELS = "list-models"
    LIST_TOOLS = "list-tools"
    HELP = "help"
    ASSEMBLE = "assemble"
    STATELESS_CHAT = "stateless-chat"
    INTERACTIVE_CHAT = "interactive-chat"
    UI_BOOTSTRAP = "ui-bootstrap"
    DAEMON_RUN = "daemon-run"
    PLAIN_RUN = "plain-run"


@dataclass(frozen=True)
class ModeInputs:
    """The flag and program facts mode selection depends on."""

    server: bool = False
    list_models: bool = False
    list_tools: bool = False
    assemble: bool = False
    daemon: bool = False
    ui: bool = False
    force_chat: bool = False
    save_chat_state_file: str = ""
    has_args: bool = False
    program_is_chat: bool = False

    @classmethod
    def from_args(
        cls,
        args: argparse.Namespace,
        positional: Sequence[str],
        program: Optional[Program] = None,
    ) -> "ModeInputs":
        return cls(
            server=bool(getattr(args, "server", False)),
            list_models=bool(getattr(args, "list_models", False)),
            list_tools=bool(getattr(args, "list_tools", False)),
            assemble=bool(getattr(args, "assemble", False)),
            daemon=bool(getattr(args, "daemon", False)),
            ui=bool(getattr(args, "ui", False)),
            force_chat=bool(getattr(args, "force_chat", False)),
            save_chat_state_file=str(getattr(args, "save_chat_state_file", "") or ""),
            has_args=bool(positional),
            program_is_chat=bool(program is not None and program.is_chat()),
        )


@dataclass(frozen=True)
class ModeRule:
    mode: ExecutionMode
    matches: Callable[[ModeInputs], bool]
    needs_program: bool = True


MODE_RULES: Tuple[ModeRule, ...] = (
    ModeRule(ExecutionMode.SERVER, lambda i: i.server, needs_program=False),
    ModeRule(ExecutionMode.LIST_MODELS, lambda i: i.list_models, needs_program=False),
    ModeRule(ExecutionMode.LIST_TOOLS, lambda i: i.list_tools),
    ModeRule(ExecutionMode.HELP, lambda i: not i.has_args),
    ModeRule(ExecutionMode.ASSEMBLE, lambda i: i.assemble),
    ModeRule(
        ExecutionMode.STATELESS_CHAT,
        lambda i: is_stateless_target(i.save_chat_state_file),
    ),
    # Forced chat wins over the UI flag.
    ModeRule(
        ExecutionMode.INTERACTIVE_CHAT, lambda i: i.program_is_chat or i.force_chat
    ),
    ModeRule(ExecutionMode.UI_BOOTSTRAP, lambda i: i.ui),
    ModeRule(ExecutionMode.DAEMON_RUN, lambda i: i.daemon),
    ModeRule(ExecutionMode.PLAIN_RUN, lambda i: True),
)


def preload_mode(inputs: ModeInputs) -> Optional[ExecutionMode]:
    """Mode decided before loading the program, or None if a program is needed."""
    for rule in MODE_RULES:
        if rule.needs_program:
            return None
        if rule.matches(inputs):
            return rule.mode
    return None


def select_mode(inputs: ModeInputs) -> ExecutionMode:
    """Pick exactly one mode; the final rule always matches."""
    for rule in MODE_RULES:
        if rule.matches(inputs):
            return rule.mode
    raise AssertionError("mode table has no default rule")
