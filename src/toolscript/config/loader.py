"""Project config loading and CLI config assembly.

Behavior: if the user explicitly passes ``--config <path>`` and the file is
missing or unreadable, raise ``ConfigurationError`` so the CLI can fail fast
with a clear message. If no path is provided and the default
``toolscript.yaml`` is not present, return an empty dict.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..exceptions import ConfigurationError
from .defaults import (
    get_default_config,
    load_dotenv_config,
    load_env_config,
    load_global_config,
    merge_config,
)

__all__ = ["build_cli_config", "load_effective_config", "load_project_config"]


def load_project_config(config_path: Optional[Path]) -> Dict[str, Any]:
    """Load YAML project configuration.

    Rules:
    - If ``config_path`` is provided and does not exist or is unreadable ⇒ raise.
    - If ``config_path`` is None and ``toolscript.yaml`` does not exist ⇒ return {}.
    - On YAML parse errors for an explicit file ⇒ raise.
    """
    explicit = config_path is not None
    path = config_path
    if path is None:
        default_path = Path("toolscript.yaml")
        path = default_path if default_path.exists() else None
    if path is None:
        return {}
    if not path.exists():
        if explicit:
            raise ConfigurationError(f"config file not found: {path}")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            if explicit:
                raise ConfigurationError(
                    f"invalid config format (expected mapping): {path}"
                )
            return {}
        return data
    except (OSError, yaml.YAMLError) as e:
        if explicit:
            raise ConfigurationError(f"failed to read config {path}: {e}") from e
        return {}


def build_cli_config(args) -> Dict[str, Any]:
    """Translate argparse args into a hierarchical config dict."""
    cfg: Dict[str, Any] = {}
    if getattr(args, "default_model", None):
        cfg["default_model"] = args.default_model
    if getattr(args, "credential_context", None):
        cfg["credential_context"] = args.credential_context
    if getattr(args, "cache_dir", None):
        cfg.setdefault("cache", {})["dir"] = str(args.cache_dir)
    if getattr(args, "disable_cache", False):
        cfg.setdefault("cache", {})["disable"] = True
    if getattr(args, "openai_api_key", None):
        cfg.setdefault("client", {})["api_key"] = args.openai_api_key
    if getattr(args, "openai_base_url", None):
        cfg.setdefault("client", {})["base_url"] = args.openai_base_url
    if getattr(args, "listen_address", None):
        cfg.setdefault("server", {})["listen_address"] = args.listen_address
    if getattr(args, "log_file", None):
        cfg.setdefault("logging", {})["file"] = args.log_file
    return cfg


def load_effective_config(
    args, environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Merge config from CLI, env, dotenv, project, global, and defaults."""
    cli = build_cli_config(args)
    env = load_env_config(environ)
    dotenv = load_dotenv_config()
    config_path = getattr(args, "config", None)
    project = load_project_config(Path(config_path) if config_path else None)
    defaults = get_default_config()
    global_cfg = load_global_config()
    return merge_config(
        cli,
        env,
        dotenv,
        project,
        merge_config({}, {}, {}, global_cfg or {}, defaults),
    )
