"""Resolve CLI flags, environment and config files into ``RuntimeOptions``.

Everything here is a pure function of its inputs apart from opening the
event-stream sink, so resolution can be repeated without observable effects.
All validation failures surface as ``ConfigurationError`` before any
program is loaded.
"""

from __future__ import annotations

import argparse
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

from ..config import load_effective_config
from ..engine.auth import make_confirm_authorizer
from ..events import open_event_sink
from ..exceptions import ConfigurationError
from ..shared import (
    CacheOptions,
    ClientOptions,
    DisplayOptions,
    PortRange,
    RuntimeOptions,
)

__all__ = [
    "parse_credential_overrides",
    "parse_port_range",
    "resolve_runtime_options",
]

_PORT_RE = re.compile(r"^\d+$")
_MAX_PORT = 65535


def parse_port_range(raw: str) -> PortRange:
    """Parse ``"<start>[-<end>]"``; a missing end means unbounded (0)."""
    start_s, _, end_s = raw.partition("-")
    start = _parse_port(start_s, raw)
    end = 0
    if end_s.strip():
        end = _parse_port(end_s, raw)
    if start == 0:
        raise ConfigurationError(f"invalid port range: {raw}")
    try:
        return PortRange(start=start, end=end)
    except ValueError as exc:
        raise ConfigurationError(f"invalid port range: {raw} ({exc})") from exc


def _parse_port(value: str, raw: str) -> int:
    value = value.strip()
    if not _PORT_RE.match(value):
        raise ConfigurationError(f"invalid port range: {raw}")
    port = int(value)
    if port > _MAX_PORT:
        raise ConfigurationError(f"invalid port range: {raw}")
    return port


def parse_credential_overrides(
    values: Iterable[str], env: Mapping[str, str]
) -> Mapping[str, Mapping[str, str]]:
    """Parse ``tool:KEY=VAL[,KEY2=VAL2]`` entries into a read-only mapping.

    A bare ``KEY`` takes its value from ``env``.
    """
    result: Dict[str, Dict[str, str]] = {}
    for raw in values:
        raw = raw.strip()
        if not raw:
            continue
        head = raw.split("=", 1)[0]
        tool, sep, _ = head.rpartition(":")
        if not sep or not tool:
            raise ConfigurationError(
                f"invalid credential override {raw!r} (expected tool:KEY=VALUE)"
            )
        assignments = raw[len(tool) + 1 :]
        entry = result.setdefault(tool, {})
        for part in assignments.split(","):
            key, eq, value = part.partition("=")
            key = key.strip()
            if not key:
                raise ConfigurationError(
                    f"invalid credential override {raw!r} (empty key)"
                )
            if not eq:
                if key not in env:
                    raise ConfigurationError(
                        f"credential override {raw!r}: {key} is not set in the environment"
                    )
                value = env[key]
            entry[key] = value
    return MappingProxyType(
        {tool: MappingProxyType(dict(kv)) for tool, kv in result.items()}
    )


def resolve_runtime_options(
    args: argparse.Namespace,
    env: Mapping[str, str],
    *,
    quiet: bool = False,
    config: Optional[Dict[str, Any]] = None,
) -> RuntimeOptions:
    """Build the validated, immutable options for this invocation."""
    cfg = config if config is not None else load_effective_config(args, env)

    ports = PortRange()
    if getattr(args, "ports", None):
        ports = parse_port_range(args.ports)

    overrides = parse_credential_overrides(
        getattr(args, "credential_override", None) or [], env
    )

    cache_cfg = cfg.get("cache", {}) or {}
    client_cfg = cfg.get("client", {}) or {}

    sink = None
    if getattr(args, "events_stream_to", None):
        sink = open_event_sink(args.events_stream_to)

    authorizer = make_confirm_authorizer() if getattr(args, "confirm", False) else None

    return RuntimeOptions(
        cache=CacheOptions(
            cache_dir=Path(cache_cfg.get("dir") or CacheOptions().cache_dir),
            disable_cache=bool(cache_cfg.get("disable", False)),
        ),
        client=ClientOptions(
            api_key=client_cfg.get("api_key") or None,
            base_url=str(client_cfg.get("base_url") or ClientOptions().base_url),
            default_model=str(cfg.get("default_model") or ClientOptions().default_model),
        ),
        display=DisplayOptions(
            debug_messages=bool(getattr(args, "debug_messages", False))
        ),
        credential_context=str(cfg.get("credential_context") or "default"),
        credential_overrides=overrides,
        ports=ports,
        event_sink=sink,
        env=MappingProxyType(dict(env)),
        workspace=str(getattr(args, "workspace", None) or ""),
        authorizer=authorizer,
        quiet=quiet,
    )
