"""Program loading, acquisition and assembly."""

from toolscript.program.assemble import assemble
from toolscript.program.loader import ProgramLoader, parse_program, resolve_remote_url
from toolscript.program.source import (
    STDIN_SENTINEL,
    ProgramAcquirer,
    StdinCache,
    read_stdin_bytes,
)

__all__ = [
    "STDIN_SENTINEL",
    "ProgramAcquirer",
    "ProgramLoader",
    "StdinCache",
    "assemble",
    "parse_program",
    "read_stdin_bytes",
    "resolve_remote_url",
]
