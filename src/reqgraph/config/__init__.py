"""
reqgraph.config - Configuration loading and defaults
"""

from reqgraph.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG
from reqgraph.config.loader import (
    ConfigError,
    _try_parse_env_value,
    apply_env_overrides,
    find_config_file,
    get_db_path,
    load_config,
    load_default_config,
    merge_configs,
    validate_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DEFAULT_CONFIG",
    "apply_env_overrides",
    "find_config_file",
    "get_db_path",
    "load_config",
    "load_default_config",
    "merge_configs",
    "validate_config",
]
