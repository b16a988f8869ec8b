"""Small helpers to add argparse groups for the CLI parser.

Each function adds one themed group so `parser.create_parser()` stays short.
"""

from __future__ import annotations

import argparse

__all__ = [
    "add_positional",
    "add_mode_args",
    "add_input_output_args",
    "add_chat_args",
    "add_runtime_args",
    "add_model_args",
    "add_display_args",
    "add_config_args",
]


def add_positional(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        metavar="PROGRAM [INPUT...]",
        help="Program file, '-' for stdin, or remote reference, then input words",
    )


def add_mode_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Modes")
    g.add_argument("--server", action="store_true", help="Serve the engine over HTTP")
    g.add_argument(
        "--listen-address",
        type=str,
        help="Server listen address (default: 127.0.0.1:0)",
    )
    g.add_argument(
        "--list-models",
        action="store_true",
        help="List available models; trailing args are provider endpoints",
    )
    g.add_argument(
        "--list-tools", action="store_true", help="List the program's tools and exit"
    )
    g.add_argument(
        "--assemble",
        action="store_true",
        help="Write the loaded program as a single portable artifact",
    )
    g.add_argument(
        "--daemon",
        action="store_true",
        help="Keep running after producing output until interrupted",
    )
    g.add_argument("--ui", action="store_true", help="Launch the chat UI for the program")


def add_input_output_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Input & Output")
    g.add_argument(
        "--input", "-f", type=str, metavar="FILE", help="Read input from FILE ('-' for stdin)"
    )
    g.add_argument("--output", "-o", type=str, metavar="FILE", help="Write result to FILE")
    g.add_argument(
        "--sub-tool", type=str, default="", help="Use this named tool as the entry point"
    )
    g.add_argument(
        "--events-stream-to",
        type=str,
        metavar="TARGET",
        help="Stream JSON-lines events to a file, fd://N, or named pipe",
    )
    g.add_argument(
        "--chdir", "-C", type=str, metavar="DIR", help="Change directory before running"
    )


def add_chat_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Chat")
    g.add_argument(
        "--chat-state",
        type=str,
        default="",
        help="Prior chat state: inline JSON, 'null', or a file path",
    )
    g.add_argument(
        "--save-chat-state-file",
        type=str,
        default="",
        metavar="FILE",
        help="Persist chat state to FILE; '-' or 'stdout' runs one stateless turn",
    )
    g.add_argument(
        "--force-chat", action="store_true", help="Treat the program as a chat program"
    )
    g.add_argument(
        "--disable-tui", action="store_true", help="Use the plain chat loop instead of the TUI"
    )


def add_runtime_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Runtime")
    g.add_argument(
        "--confirm", action="store_true", help="Ask before running dangerous actions"
    )
    g.add_argument(
        "--ports",
        type=str,
        metavar="START[-END]",
        help="Port range for daemon tools",
    )
    g.add_argument("--workspace", type=str, help="Directory for tool file operations")
    g.add_argument(
        "--credential-context",
        type=str,
        help="Context that scopes stored credentials (default: default)",
    )
    g.add_argument(
        "--credential-override",
        action="append",
        metavar="TOOL:KEY=VALUE",
        help="Override credentials for a tool (repeatable)",
    )
    g.add_argument("--cache-dir", type=str, help="Cache directory")
    g.add_argument(
        "--disable-cache",
        action="store_true",
        default=None,
        help="Disable the disk cache",
    )


def add_model_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Model")
    g.add_argument("--default-model", type=str, help="Model used when a tool names none")
    g.add_argument("--openai-api-key", type=str, help="API key for the model endpoint")
    g.add_argument("--openai-base-url", type=str, help="Base URL of the model endpoint")


def add_display_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Display")
    g.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        default=None,
        help="Suppress input echo and status output (default: on when stdout is not a terminal)",
    )
    g.add_argument(
        "--color",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force colored output on or off",
    )
    g.add_argument("--debug", action="store_true", help="Enable debug logging")
    g.add_argument(
        "--debug-messages", action="store_true", help="Log model request and response messages"
    )
    g.add_argument(
        "--no-trunc", action="store_true", help="Do not truncate long log messages"
    )


def add_config_args(parser: argparse.ArgumentParser) -> None:
    g = parser.add_argument_group("Configuration")
    g.add_argument("--config", type=str, help="Path to toolscript.yaml")
    g.add_argument("--log-file", type=str, help="Also write JSON-lines logs to this file")
