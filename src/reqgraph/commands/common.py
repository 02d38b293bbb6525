"""
reqgraph.commands.common - Helpers shared by command implementations.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from reqgraph.config import (
    find_config_file,
    get_db_path,
    load_config,
    load_default_config,
    validate_config,
)
from reqgraph.store.facts import FactStore
from reqgraph.store.models import Diagnostic


def load_configuration(args: argparse.Namespace) -> Tuple[Dict[str, Any], Optional[Path]]:
    """
    Load configuration from --config, the nearest .reqgraph.toml, or defaults.

    A --db option on the command line overrides database.url.

    Returns:
        (config, config_path); config_path is None when running on defaults

    Raises:
        ValueError: If the configuration is invalid
    """
    config_path = getattr(args, "config", None)
    if config_path is None:
        config_path = find_config_file(Path.cwd())

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = load_config(config_path)
    else:
        config = load_default_config()

    db = getattr(args, "db", None)
    if db:
        config["database"]["url"] = str(db)

    errors = validate_config(config)
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
    return config, config_path


def open_store(args: argparse.Namespace) -> Tuple[FactStore, Dict[str, Any]]:
    """Load configuration and open the fact store it points to."""
    config, config_path = load_configuration(args)
    # a --db path is relative to the working directory
    anchor = None if getattr(args, "db", None) else config_path
    db_path = get_db_path(config, anchor)
    if args.verbose:
        print(f"Using database: {db_path}", file=sys.stderr)
    return FactStore(db_path), config


def print_diagnostics(args: argparse.Namespace, diagnostics: Iterable[Diagnostic]) -> int:
    """
    Print diagnostics to stderr.

    Warnings are always shown, info entries only with --verbose.

    Returns:
        Number of warnings printed
    """
    warnings = 0
    for diagnostic in diagnostics:
        if diagnostic.severity == "warning":
            warnings += 1
            print(f"Warning: {diagnostic}", file=sys.stderr)
        elif args.verbose:
            print(f"Info: {diagnostic}", file=sys.stderr)
    return warnings
