"""CLI parser builder for toolscript.

Lean `create_parser()` that assembles argument groups via small helpers.
"""

from __future__ import annotations

import argparse

from ..version import PROGRAM_NAME, __version__
from .parser_sections import (
    add_chat_args,
    add_config_args,
    add_display_args,
    add_input_output_args,
    add_mode_args,
    add_model_args,
    add_positional,
    add_runtime_args,
)

__all__ = ["create_parser"]


def _epilog() -> str:
    return (
        "Quick examples:\n"
        "  # Run a program with input\n"
        "  toolscript ./summarize.yaml 'the text to summarize'\n\n"
        "  # Program from stdin\n"
        "  cat tool.yaml | toolscript - some input\n\n"
        "  # Chat, persisting state between sessions\n"
        "  toolscript --save-chat-state-file state.json ./assistant.yaml\n\n"
        "  # One stateless chat turn (state printed as JSON)\n"
        "  toolscript --chat-state state.json --save-chat-state-file - ./assistant.yaml hi\n\n"
        "  # Listing and serving\n"
        "  toolscript --list-tools ./tools.yaml\n"
        "  toolscript --list-models\n"
        "  toolscript --server --listen-address 127.0.0.1:9090\n"
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        description=(
            "Run tool scripts: one-shot, as a chat, as a daemon, or behind an HTTP server.\n"
            "Flags must come before the program; everything after it is input."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=_epilog(),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    add_mode_args(parser)
    add_input_output_args(parser)
    add_chat_args(parser)
    add_runtime_args(parser)
    add_model_args(parser)
    add_display_args(parser)
    add_config_args(parser)
    add_positional(parser)
    return parser
