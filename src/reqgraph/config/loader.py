"""
reqgraph.config.loader - Configuration file loading.

Configuration is layered: DEFAULT_CONFIG, then the nearest .reqgraph.toml,
then REQGRAPH_SECTION_KEY environment variables.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomlkit
from tomlkit.exceptions import TOMLKitError

from reqgraph.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG, ENV_PREFIX, REPORT_FORMATS
from reqgraph.store.facts import resolve_db_path


class ConfigError(ValueError):
    """Configuration file could not be read or is invalid."""


def find_config_file(start_path: Path) -> Optional[Path]:
    """
    Find the configuration file by walking up from start_path.

    Args:
        start_path: Directory to start searching from

    Returns:
        Path to the config file, or None if not found
    """
    current = start_path.resolve()
    if current.is_file():
        current = current.parent

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def parse_toml(content: str) -> Dict[str, Any]:
    """Parse TOML content into plain Python values."""
    return tomlkit.parse(content).unwrap()


def load_config(config_path: Path, apply_env: bool = True) -> Dict[str, Any]:
    """
    Load a configuration file and merge it over the defaults.

    Args:
        config_path: Path to .reqgraph.toml
        apply_env: Apply REQGRAPH_* environment overrides

    Returns:
        Merged configuration dictionary

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e.strerror or e}") from e
    try:
        user_config = parse_toml(content)
    except TOMLKitError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    config = merge_configs(DEFAULT_CONFIG, user_config)
    if apply_env:
        config = apply_env_overrides(config)
    return config


def load_default_config(apply_env: bool = True) -> Dict[str, Any]:
    """Defaults plus environment overrides, for runs without a config file."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if apply_env:
        config = apply_env_overrides(config)
    return config


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge override into a copy of base.

    Nested dictionaries are merged key by key; any other value in override
    replaces the base value.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _try_parse_env_value(value: str) -> Any:
    """
    Convert an environment string into a typed value.

    JSON arrays and objects are decoded, "true"/"false" become booleans,
    integers become ints. Anything else, including malformed JSON, is
    returned unchanged.
    """
    stripped = value.strip()
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    if stripped.lstrip("-").isdigit():
        return int(stripped)
    return value


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply REQGRAPH_SECTION_KEY environment variables to config.

    REQGRAPH_DATABASE_URL sets config["database"]["url"];
    REQGRAPH_HIERARCHY_DERIVE_FROM_ID sets config["hierarchy"]["derive_from_id"].
    Missing sections are created.
    """
    for name, raw in os.environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        rest = name[len(ENV_PREFIX):].lower()
        if "_" not in rest:
            continue
        section, key = rest.split("_", 1)
        if not section or not key:
            continue
        target = config.setdefault(section, {})
        if isinstance(target, dict):
            target[key] = _try_parse_env_value(raw)
    return config


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Check a merged configuration for invalid values.

    Returns:
        List of error messages (empty when valid)
    """
    errors: List[str] = []

    database = config.get("database", {})
    if not isinstance(database.get("url"), str) or not database.get("url"):
        errors.append("database.url must be a non-empty string")

    hierarchy = config.get("hierarchy", {})
    if not isinstance(hierarchy.get("derive_from_id"), bool):
        errors.append("hierarchy.derive_from_id must be true or false")
    if not isinstance(hierarchy.get("separator"), str):
        errors.append("hierarchy.separator must be a string")

    report = config.get("report", {})
    if report.get("format") not in REPORT_FORMATS:
        errors.append(
            f"report.format must be one of {', '.join(REPORT_FORMATS)}, "
            f"got {report.get('format')!r}"
        )

    validation = config.get("validation", {})
    if not isinstance(validation.get("fail_on_unrelated"), bool):
        errors.append("validation.fail_on_unrelated must be true or false")

    return errors


def get_db_path(config: Dict[str, Any], config_path: Optional[Path] = None) -> str:
    """
    Resolve the configured database location.

    Relative paths are anchored at the config file's directory, or the
    current directory when running on defaults.
    """
    base_dir = config_path.parent if config_path else Path.cwd()
    return resolve_db_path(config["database"]["url"], base_dir)
