"""Default execution engine and its helpers."""

from toolscript.engine.auth import ABORTED_BY_USER, make_confirm_authorizer
from toolscript.engine.builtins import is_builtin, list_builtin_tools
from toolscript.engine.client import ModelClient
from toolscript.engine.engine import Engine

__all__ = [
    "ABORTED_BY_USER",
    "Engine",
    "ModelClient",
    "is_builtin",
    "list_builtin_tools",
    "make_confirm_authorizer",
]
