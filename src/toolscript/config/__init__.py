"""Configuration loading, layering, and defaults."""

from toolscript.config.defaults import (
    DEFAULT_UI_TOOL,
    deep_merge,
    get_default_config,
    load_dotenv_config,
    load_env_config,
    load_global_config,
    merge_config,
)
from toolscript.config.loader import (
    build_cli_config,
    load_effective_config,
    load_project_config,
)

__all__ = [
    "DEFAULT_UI_TOOL",
    "build_cli_config",
    "deep_merge",
    "get_default_config",
    "load_dotenv_config",
    "load_effective_config",
    "load_env_config",
    "load_global_config",
    "load_project_config",
    "merge_config",
]
