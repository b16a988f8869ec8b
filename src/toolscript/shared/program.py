"""Program and tool data structures shared across layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

__all__ = ["EMPTY_PROGRAM", "Program", "Tool"]


@dataclass(frozen=True)
class Tool:
    """A single callable tool declared in a program."""

    id: str
    name: str = ""
    description: str = ""
    instructions: str = ""
    chat: bool = False
    model: str = ""
    tools: Tuple[str, ...] = ()
    credentials: Tuple[str, ...] = ()
    source: str = ""

    def render(self, include_instructions: bool = True) -> str:
        """Render the tool as human-readable header lines."""
        lines: List[str] = []
        if self.name:
            lines.append(f"Name: {self.name}")
        if self.description:
            lines.append(f"Description: {self.description}")
        if self.model:
            lines.append(f"Model: {self.model}")
        if self.chat:
            lines.append("Chat: true")
        if self.tools:
            lines.append(f"Tools: {', '.join(self.tools)}")
        if self.credentials:
            lines.append(f"Credentials: {', '.join(self.credentials)}")
        if include_instructions and self.instructions:
            lines.append("")
            lines.append(self.instructions)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        for key in ("name", "description", "instructions", "model", "source"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.chat:
            data["chat"] = True
        if self.tools:
            data["tools"] = list(self.tools)
        if self.credentials:
            data["credentials"] = list(self.credentials)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Tool":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            instructions=str(data.get("instructions") or ""),
            chat=bool(data.get("chat", False)),
            model=str(data.get("model") or ""),
            tools=tuple(str(t) for t in data.get("tools") or ()),
            credentials=tuple(str(c) for c in data.get("credentials") or ()),
            source=str(data.get("source") or ""),
        )


@dataclass(frozen=True)
class Program:
    """A loaded, structurally resolved tool graph.

    ``tool_set`` preserves declaration order. The program is never mutated
    after loading; derived variants (such as the blocking one used for
    daemon runs) are new instances.
    """

    name: str = ""
    entry_tool_id: str = ""
    tool_set: Mapping[str, Tool] = field(
        default_factory=lambda: MappingProxyType({})
    )
    blocking: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.entry_tool_id

    @property
    def entry_tool(self) -> Optional[Tool]:
        return self.tool_set.get(self.entry_tool_id)

    def is_chat(self) -> bool:
        tool = self.entry_tool
        return bool(tool and tool.chat)

    def set_blocking(self) -> "Program":
        return replace(self, blocking=True)

    def tools(self) -> List[Tool]:
        return list(self.tool_set.values())

    def find_tool(self, name: str) -> Optional[Tool]:
        for tool in self.tool_set.values():
            if tool.name == name:
                return tool
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "entryToolId": self.entry_tool_id,
            "toolSet": {tid: tool.to_dict() for tid, tool in self.tool_set.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Program":
        tools = {
            str(tid): Tool.from_dict({"id": tid, **dict(raw)})
            for tid, raw in (data.get("toolSet") or {}).items()
        }
        return cls(
            name=str(data.get("name") or ""),
            entry_tool_id=str(data.get("entryToolId") or ""),
            tool_set=MappingProxyType(tools),
        )


EMPTY_PROGRAM = Program()
