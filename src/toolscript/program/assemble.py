"""Serialise a loaded program into a single portable artifact."""

from __future__ import annotations

import json
from typing import TextIO

from ..shared import Program

__all__ = ["assemble"]


def assemble(program: Program, sink: TextIO) -> None:
    """Write ``program`` as a JSON document the loader accepts back."""
    json.dump(program.to_dict(), sink, indent=2)
    sink.write("\n")
    sink.flush()
