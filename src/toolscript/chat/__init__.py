"""Chat state persistence and interactive chat front ends."""

from toolscript.chat.session import ChatIO, PlainChatIO, run_chat
from toolscript.chat.state import (
    STATELESS_TARGETS,
    is_stateless_target,
    load_chat_state,
    save_chat_state,
)
from toolscript.chat.tui import RichChatIO

__all__ = [
    "ChatIO",
    "PlainChatIO",
    "RichChatIO",
    "STATELESS_TARGETS",
    "is_stateless_target",
    "load_chat_state",
    "run_chat",
    "save_chat_state",
]
