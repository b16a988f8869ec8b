"""Loading and persisting resumable chat state."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..exceptions import ChatStateError

__all__ = [
    "STATELESS_TARGETS",
    "is_stateless_target",
    "load_chat_state",
    "save_chat_state",
]

logger = logging.getLogger(__name__)

# Save targets meaning "the state is the result", never a side file.
STATELESS_TARGETS = frozenset({"-", "stdout"})


def is_stateless_target(target: Optional[str]) -> bool:
    return bool(target) and target in STATELESS_TARGETS


def load_chat_state(token: Optional[str]) -> Optional[str]:
    """Materialise the initial chat state from a ``--chat-state`` value.

    ``""`` and ``"null"`` start a fresh session, a leading ``{`` is inline
    JSON used verbatim, and anything else is a file whose contents are used
    verbatim.
    """
    if not token or token == "null":
        return None
    if token.startswith("{"):
        return token
    try:
        return Path(token).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ChatStateError(f"reading chat state {token}: {exc}") from exc


def save_chat_state(target: Optional[str], state: Optional[str]) -> bool:
    """Write ``state`` to ``target``. Returns False when nothing was written."""
    if not target or is_stateless_target(target):
        return False
    Path(target).write_text(state or "null", encoding="utf-8")
    logger.debug("saved chat state to %s", target)
    return True
