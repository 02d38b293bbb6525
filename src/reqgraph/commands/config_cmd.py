"""
reqgraph.commands.config_cmd - Inspect the effective configuration.
"""

import argparse
import json
import sys
from typing import Any, Dict

import tomlkit

from reqgraph.commands.common import load_configuration


def run(args: argparse.Namespace) -> int:
    """
    Run the config command.

    Returns:
        Exit code (0 for success, 1 for usage errors)
    """
    action = getattr(args, "config_action", None)
    if action == "show":
        return cmd_show(args)
    if action == "path":
        return cmd_path(args)
    print("Usage: reqgraph config {show,path}", file=sys.stderr)
    return 1


def cmd_show(args: argparse.Namespace) -> int:
    """Print the merged configuration, defaults and environment included."""
    config, _config_path = load_configuration(args)

    section = getattr(args, "section", None)
    data: Dict[str, Any] = config
    if section:
        if section not in config:
            print(f"Error: Unknown config section '{section}'", file=sys.stderr)
            return 1
        data = {section: config[section]}

    if args.json:
        print(json.dumps(data, indent=2))
    else:
        print(tomlkit.dumps(data), end="")
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    """Print the location of the configuration file in use."""
    _config, config_path = load_configuration(args)
    if config_path is None:
        print("No configuration file found (using defaults)", file=sys.stderr)
        return 1
    print(config_path.resolve())
    return 0
