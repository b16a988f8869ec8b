"""Runtime option dataclasses shared across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Optional

if TYPE_CHECKING:
    from ..events.sink import EventSink

__all__ = [
    "Authorizer",
    "CacheOptions",
    "ClientOptions",
    "DisplayOptions",
    "PortRange",
    "RuntimeOptions",
]

# Given a pending action description, resolve to True (allow) or False (deny).
Authorizer = Callable[[str], Awaitable[bool]]

DEFAULT_MODEL = "gpt-4o"


@dataclass(frozen=True)
class CacheOptions:
    """Disk cache settings for remote programs and model responses."""

    cache_dir: Path = Path.home() / ".cache" / "toolscript"
    disable_cache: bool = False


@dataclass(frozen=True)
class ClientOptions:
    """Settings for the OpenAI-compatible model client."""

    api_key: Optional[str] = None
    base_url: str = "https://api.openai.com/v1"
    default_model: str = DEFAULT_MODEL


@dataclass(frozen=True)
class DisplayOptions:
    debug_messages: bool = False


@dataclass(frozen=True)
class PortRange:
    """Ephemeral port range for daemon tools; ``end == 0`` means unbounded."""

    start: int = 0
    end: int = 0

    def __post_init__(self) -> None:
        if self.end and self.end < self.start:
            raise ValueError(f"port range end {self.end} is below start {self.start}")

    @property
    def configured(self) -> bool:
        return self.start > 0


@dataclass(frozen=True)
class RuntimeOptions:
    """Validated configuration for one invocation. Immutable once built."""

    cache: CacheOptions = field(default_factory=CacheOptions)
    client: ClientOptions = field(default_factory=ClientOptions)
    display: DisplayOptions = field(default_factory=DisplayOptions)
    credential_context: str = "default"
    credential_overrides: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    ports: PortRange = field(default_factory=PortRange)
    event_sink: Optional["EventSink"] = None
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    workspace: str = ""
    authorizer: Optional[Authorizer] = None
    quiet: bool = False
