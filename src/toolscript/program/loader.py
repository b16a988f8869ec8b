"""Default program loader: local files, stdin text, and remote references.

A program document is YAML (JSON is accepted as a subset):

* a mapping with a ``tools`` list of tool mappings;
* a single tool mapping (``name``/``instructions``/...);
* an assembled artifact (a mapping with ``toolSet``);
* anything else is taken verbatim as the instructions of one unnamed tool.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, Optional

import aiohttp
import yaml

from ..cache import DiskCache
from ..engine.builtins import is_builtin
from ..exceptions import LoadError
from ..shared import Program, Tool

__all__ = ["ProgramLoader", "parse_program", "resolve_remote_url"]

logger = logging.getLogger(__name__)

_GITHUB_RE = re.compile(
    r"^github\.com/(?P<owner>[^/@]+)/(?P<repo>[^/@]+)(?P<path>/[^@]*)?(?:@(?P<ref>.+))?$"
)
_DEFAULT_REMOTE_FILE = "tool.yaml"
_FETCH_TIMEOUT_S = 30


def resolve_remote_url(reference: str) -> Optional[str]:
    """Map a remote identifier to a fetchable URL, or None if it is not remote."""
    if reference.startswith(("http://", "https://")):
        return reference
    match = _GITHUB_RE.match(reference)
    if not match:
        return None
    path = (match.group("path") or "").strip("/") or _DEFAULT_REMOTE_FILE
    ref = match.group("ref") or "HEAD"
    return (
        f"https://raw.githubusercontent.com/{match.group('owner')}/"
        f"{match.group('repo')}/{ref}/{path}"
    )


def _tool_from_mapping(raw: Mapping[str, Any], location: str, index: int) -> Tool:
    name = str(raw.get("name") or "").strip()
    tools = raw.get("tools") or []
    if isinstance(tools, str):
        tools = [t.strip() for t in tools.split(",") if t.strip()]
    credentials = raw.get("credentials") or []
    if isinstance(credentials, str):
        credentials = [credentials]
    return Tool(
        id=f"{location}:{name or f'#{index}'}",
        name=name,
        description=str(raw.get("description") or "").strip(),
        instructions=str(raw.get("instructions") or "").strip(),
        chat=bool(raw.get("chat", False)),
        model=str(raw.get("model") or "").strip(),
        tools=tuple(str(t) for t in tools),
        credentials=tuple(str(c) for c in credentials),
        source=location,
    )


def _tool_mappings(data: Any) -> Optional[List[Mapping[str, Any]]]:
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("tools"), list) and all(
        isinstance(item, dict) for item in data["tools"]
    ):
        return list(data["tools"])
    if "instructions" in data or "name" in data:
        return [data]
    return None


def _select_entry(tools: List[Tool], sub_tool: str, location: str) -> Tool:
    if not sub_tool:
        return tools[0]
    for tool in tools:
        if tool.name == sub_tool:
            return tool
    raise LoadError(location, f"tool {sub_tool!r} not found")


def _check_references(tools: List[Tool], location: str) -> None:
    names = {tool.name for tool in tools if tool.name}
    for tool in tools:
        for ref in tool.tools:
            if ref not in names and not is_builtin(ref):
                raise LoadError(
                    location,
                    f"tool {tool.name or tool.id!r} references unknown tool {ref!r}",
                )


def parse_program(content: str, sub_tool: str = "", location: str = "stdin") -> Program:
    """Parse program text into a resolved ``Program``."""
    name = Path(location).name if location else ""
    try:
        data = yaml.safe_load(content) if content.strip() else None
    except yaml.YAMLError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("toolSet"), dict):
        program = Program.from_dict(data)
        if sub_tool:
            entry = program.find_tool(sub_tool)
            if entry is None:
                raise LoadError(location, f"tool {sub_tool!r} not found")
            program = Program(
                name=program.name,
                entry_tool_id=entry.id,
                tool_set=program.tool_set,
            )
        return program

    mappings = _tool_mappings(data)
    if mappings is not None:
        tools = [_tool_from_mapping(m, location, i) for i, m in enumerate(mappings)]
    elif content.strip():
        tools = [
            Tool(id=f"{location}:#0", instructions=content.strip(), source=location)
        ]
    else:
        raise LoadError(location, "program is empty")

    ids = [tool.id for tool in tools]
    if len(set(ids)) != len(ids):
        raise LoadError(location, "duplicate tool names")
    _check_references(tools, location)
    entry = _select_entry(tools, sub_tool, location)
    return Program(
        name=name,
        entry_tool_id=entry.id,
        tool_set=MappingProxyType({tool.id: tool for tool in tools}),
    )


class ProgramLoader:
    """Loads programs from text, local paths, or remote identifiers."""

    def __init__(self, cache: DiskCache) -> None:
        self.cache = cache

    async def from_source(
        self, content: str, sub_tool: str = "", location: str = "stdin"
    ) -> Program:
        return parse_program(content, sub_tool, location)

    async def from_reference(self, reference: str, sub_tool: str = "") -> Program:
        path = Path(reference)
        if path.is_file():
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise LoadError(reference, str(exc)) from exc
            return parse_program(content, sub_tool, str(path))

        url = resolve_remote_url(reference)
        if url is None:
            if path.is_dir():
                raise LoadError(reference, "is a directory")
            raise LoadError(reference, "not found")
        content = await self._fetch(url)
        return parse_program(content, sub_tool, reference)

    async def _fetch(self, url: str) -> str:
        cached = self.cache.get("programs", url)
        if isinstance(cached, str):
            logger.debug("using cached program for %s", url)
            return cached
        logger.debug("fetching program %s", url)
        timeout = aiohttp.ClientTimeout(total=_FETCH_TIMEOUT_S)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    if resp.status != 200:
                        raise LoadError(url, f"HTTP {resp.status}")
                    content = await resp.text()
        except aiohttp.ClientError as exc:
            raise LoadError(url, str(exc)) from exc
        self.cache.put("programs", url, content)
        return content
