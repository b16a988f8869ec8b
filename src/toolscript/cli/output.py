"""Printing the final result of a run."""

from __future__ import annotations

import os
import sys
from typing import Optional, TextIO

__all__ = ["OUTPUT_FILE_MODE", "print_output", "write_output_file"]

OUTPUT_FILE_MODE = 0o644


def write_output_file(path: str, result: str) -> None:
    """Write ``result`` to ``path``, truncating; errors propagate as-is."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, OUTPUT_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(result)


def print_output(
    input: str,
    result: str,
    *,
    output_file: str = "",
    quiet: bool = False,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> None:
    """Emit ``result`` to ``output_file`` or to the standard streams.

    When not quiet, the input (if any) and an ``OUTPUT:`` label are echoed
    to stderr first. The result itself always reaches stdout and ends with
    exactly one added newline when it lacks one.
    """
    if output_file and output_file != "-":
        write_output_file(output_file, result)
        return

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    if not quiet:
        if input:
            err.write(f"\nINPUT:\n\n{input}\n")
        err.write("\nOUTPUT:\n\n")
        err.flush()
    out.write(result)
    if not result.endswith("\n"):
        out.write("\n")
    out.flush()
