"""
Shared types used across layers.

Data structures that the CLI, engine, server and chat layers all need live
here so those layers never import from each other directly.
"""

from .cancel import CancellationToken
from .chat import ChatResponse
from .options import (
    Authorizer,
    CacheOptions,
    ClientOptions,
    DisplayOptions,
    PortRange,
    RuntimeOptions,
)
from .program import EMPTY_PROGRAM, Program, Tool

__all__ = [
    "Authorizer",
    "CacheOptions",
    "CancellationToken",
    "ChatResponse",
    "ClientOptions",
    "DisplayOptions",
    "EMPTY_PROGRAM",
    "PortRange",
    "Program",
    "RuntimeOptions",
    "Tool",
]
