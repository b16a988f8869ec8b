"""Chat turn result passed between the engine and the front end."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ChatResponse:
    """Outcome of a single chat turn.

    ``state`` is opaque to everything but the engine; callers store it and
    hand it back verbatim on the next turn.
    """

    done: bool
    content: str
    tool_id: str = ""
    state: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "done": self.done,
            "content": self.content,
            "toolID": self.tool_id,
            "state": self.state,
        }
