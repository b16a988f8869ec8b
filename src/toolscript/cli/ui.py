"""Argument and environment rewriting for ``--ui``."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Sequence, Tuple

from ..exceptions import ConfigurationError
from ..program import STDIN_SENTINEL
from .startup import BIN_ENV, binary_location

__all__ = ["SCRIPTS_PATH_ENV", "UI_TOOL_ENV", "bootstrap_ui"]

SCRIPTS_PATH_ENV = "SCRIPTS_PATH"
UI_TOOL_ENV = "TOOLSCRIPT_CHAT_UI_TOOL"


def bootstrap_ui(
    positional: Sequence[str],
    env: Mapping[str, str],
    ui_tool: str,
    cwd: Path,
) -> Tuple[List[str], Dict[str, str]]:
    """Rewrite ``[script, input...]`` to run the chat UI tool on ``script``.

    Returns the new positional arguments and environment. A script read from
    stdin cannot be handed to the UI. ``positional`` is never empty here:
    ``--ui`` without a script shows help instead.
    """
    script = positional[0]
    if script == STDIN_SENTINEL:
        raise ConfigurationError("chat UI only supports files, cannot read from stdin")
    path = Path(script)
    if not path.is_absolute():
        path = cwd / path

    new_env = dict(env)
    new_env[SCRIPTS_PATH_ENV] = str(path.parent)
    new_env.setdefault(BIN_ENV, binary_location())
    tool = env.get(UI_TOOL_ENV) or ui_tool
    new_args = [tool, f"--file={path.name}", *positional[1:]]
    return new_args, new_env
