"""Configuration defaults and layered loading for toolscript."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import dotenv_values

__all__ = [
    "DEFAULT_UI_TOOL",
    "deep_merge",
    "get_default_config",
    "load_dotenv_config",
    "load_env_config",
    "load_global_config",
    "merge_config",
]

logger = logging.getLogger(__name__)

DEFAULT_UI_TOOL = "github.com/toolscript-ai/ui@v2"

_ENV_TO_CONFIG_KEY: Dict[str, Tuple[str, ...]] = {
    "OPENAI_API_KEY": ("client", "api_key"),
    "OPENAI_BASE_URL": ("client", "base_url"),
    "TOOLSCRIPT_DEFAULT_MODEL": ("default_model",),
    "TOOLSCRIPT_CACHE_DIR": ("cache", "dir"),
    "TOOLSCRIPT_DISABLE_CACHE": ("cache", "disable"),
    "TOOLSCRIPT_CREDENTIAL_CONTEXT": ("credential_context",),
    "TOOLSCRIPT_CHAT_UI_TOOL": ("ui", "tool"),
    "TOOLSCRIPT_LOG_FILE": ("logging", "file"),
}
_BOOL_KEYS = {("cache", "disable")}


def merge_config(
    cli_args: Dict[str, Any],
    env_config: Dict[str, Any],
    dotenv_config: Dict[str, Any],
    file_config: Dict[str, Any],
    defaults: Dict[str, Any],
) -> Dict[str, Any]:
    """Merge configuration dictionaries honoring precedence order."""
    merged = defaults.copy()
    deep_merge(merged, file_config)
    deep_merge(merged, dotenv_config)
    deep_merge(merged, env_config)
    cli_filtered = {key: value for key, value in cli_args.items() if value is not None}
    deep_merge(merged, cli_filtered)
    return merged


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> None:
    """Recursively merge ``overlay`` into ``base`` in place."""
    for key, value in overlay.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            base[key] = dict(base[key])
            deep_merge(base[key], value)
        else:
            base[key] = value


def load_global_config() -> Dict[str, Any]:
    """Load user-level configuration from standard locations."""
    try:
        home = Path.home()
    except (OSError, RuntimeError):
        return {}

    for candidate in (
        home / ".toolscript" / "config.yaml",
        home / ".config" / "toolscript" / "config.yaml",
    ):
        try:
            if candidate.exists():
                with candidate.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle) or {}
                if isinstance(data, dict):
                    return data
        except (yaml.YAMLError, OSError):
            continue
    return {}


def load_dotenv_config(dotenv_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load supported settings from a ``.env`` file."""
    path = dotenv_path or Path(".env")
    if not path.exists():
        return {}
    return _config_from_mapping(dotenv_values(path))


def load_env_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load supported settings from an environment snapshot."""
    return _config_from_mapping(os.environ if environ is None else environ)


def get_default_config() -> Dict[str, Any]:
    """Return a fresh copy of toolscript's default configuration."""
    return {
        "default_model": "gpt-4o",
        "credential_context": "default",
        "cache": {
            "dir": str(Path.home() / ".cache" / "toolscript"),
            "disable": False,
        },
        "client": {
            "api_key": None,
            "base_url": "https://api.openai.com/v1",
        },
        "server": {
            "listen_address": "127.0.0.1:0",
        },
        "ui": {
            "tool": DEFAULT_UI_TOOL,
        },
        "logging": {
            "file": None,
        },
    }


def _config_from_mapping(values: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    for env_key, path in _ENV_TO_CONFIG_KEY.items():
        value = values.get(env_key)
        if value is None or value == "":
            continue
        parsed: Any = _parse_bool(value) if path in _BOOL_KEYS else value
        _set_path(config, path, parsed)
    return config


def _set_path(config: Dict[str, Any], path: Tuple[str, ...], value: Any) -> None:
    node = config
    for part in path[:-1]:
        node = node.setdefault(part, {})
    node[path[-1]] = value


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
