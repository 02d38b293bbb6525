"""
reqgraph.cli - Command-line interface.

Main entry point for the reqgraph CLI tool.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from reqgraph import __version__
from reqgraph.commands import (
    collect,
    completion,
    config_cmd,
    maintenance,
    reconcile_cmd,
    report_cmd,
    status_cmd,
    validate,
)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="reqgraph",
        description="Requirement traceability graph: collect facts, derive status, report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reqgraph collect requirements reqs.json    # Record a new requirements batch
  reqgraph collect traces traces.json        # Record where requirements are traced
  reqgraph collect coverage coverage.json    # Record a test run
  reqgraph collect review review.toml        # Record a manual review
  reqgraph reconcile                         # List rows the last batch did not confirm
  reqgraph reconcile --confirm               # ...and delete them
  reqgraph report --html -o report.html      # Render the traceability report
  reqgraph status REQ.login.password         # Derived status of one requirement

Configuration:
  reqgraph config path          # Show config file location
  reqgraph config show          # View all settings

For detailed command help: reqgraph <command> --help
        """,
    )

    # Global options
    parser.add_argument(
        "--version",
        action="version",
        version=f"reqgraph {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
        metavar="PATH",
    )
    parser.add_argument(
        "--db",
        help="Override the database location (database.url)",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # collect command
    collect_parser = subparsers.add_parser(
        "collect",
        help="Ingest producer records into the fact base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Record kinds:
  requirements  {"requirements": [{id, origin, title, annotation?, parent_ids?}]}
  traces        {"files": [{filepath, traces: [{ids, line, item_name?, line_span?}]}]}
  coverage      {"test_runs": [{name, date, expected_test_count, tests: [...]}]}
  review        TOML or JSON: {name, date, reviewer, comment?, requirements: [{id}]}

Requirements and traces start a new generation. Facts referring to
something not yet collected are kept as unrelated until it shows up.
""",
    )
    collect_parser.add_argument(
        "collect_kind",
        choices=["requirements", "traces", "coverage", "review"],
        metavar="KIND",
        help="Record kind: requirements, traces, coverage or review",
    )
    collect_parser.add_argument(
        "files",
        nargs="+",
        type=Path,
        metavar="FILE",
        help="Producer record file(s)",
    )

    # reconcile command
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Remove requirements and traces the last batch did not confirm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  reqgraph reconcile                  # Dry run against the latest batch
  reqgraph reconcile --confirm        # Delete the stale rows
  reqgraph reconcile --generation 4   # Check against a specific batch

Test runs and reviews are history and are never removed here; see 'prune'.
""",
    )
    reconcile_parser.add_argument(
        "--generation",
        type=int,
        metavar="N",
        help="Batch generation to reconcile against (default: latest)",
    )
    reconcile_parser.add_argument(
        "--confirm",
        action="store_true",
        help="Delete the stale rows instead of listing them",
    )
    reconcile_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # report command
    report_parser = subparsers.add_parser(
        "report",
        help="Render the traceability report",
    )
    report_format = report_parser.add_mutually_exclusive_group()
    report_format.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="JSON output (default from [report] format)",
    )
    report_format.add_argument(
        "--html",
        action="store_true",
        help="HTML output (requires reqgraph[html])",
    )
    report_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        metavar="PATH",
        help="Write to PATH instead of stdout",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show the derived status of one requirement",
    )
    status_parser.add_argument(
        "req_id",
        metavar="REQ_ID",
        help="Requirement id",
    )
    status_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Fail when deprecated requirements are still traced",
    )
    validate_parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )

    # prune command
    subparsers.add_parser(
        "prune",
        help="Delete test runs and reviews nothing refers to anymore",
    )

    # clear command
    clear_parser = subparsers.add_parser(
        "clear",
        help="Delete every fact, history included",
    )
    clear_parser.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Do not ask for confirmation",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Inspect the effective configuration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Configuration is read from .reqgraph.toml (searched upward from the current
directory) and REQGRAPH_SECTION_KEY environment variables, e.g.
REQGRAPH_DATABASE_URL=sqlite://facts.db.
""",
    )
    config_subparsers = config_parser.add_subparsers(dest="config_action")
    config_show = config_subparsers.add_parser(
        "show",
        help="Show current configuration",
    )
    config_show.add_argument(
        "--section",
        help="Show only a specific section (e.g., 'database')",
        metavar="SECTION",
    )
    config_show.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    config_subparsers.add_parser(
        "path",
        help="Show config file location",
    )

    # completion command
    completion_parser = subparsers.add_parser(
        "completion",
        help="Generate shell tab-completion scripts",
    )
    completion_parser.add_argument(
        "--shell",
        choices=list(completion.SHELLS),
        help="Generate script for specific shell",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()

    # Enable shell tab-completion if argcomplete is installed
    # Install with: pip install reqgraph[completion]
    try:
        import argcomplete

        argcomplete.autocomplete(parser)
    except ImportError:
        pass

    args = parser.parse_args(argv)

    # Handle no command
    if not args.command:
        parser.print_help()
        return 0

    try:
        # Dispatch to command handlers
        if args.command == "collect":
            return collect.run(args)
        elif args.command == "reconcile":
            return reconcile_cmd.run(args)
        elif args.command == "report":
            return report_cmd.run(args)
        elif args.command == "status":
            return status_cmd.run(args)
        elif args.command == "validate":
            return validate.run(args)
        elif args.command == "prune":
            return maintenance.run_prune(args)
        elif args.command == "clear":
            return maintenance.run_clear(args)
        elif args.command == "config":
            return config_cmd.run(args)
        elif args.command == "completion":
            return completion.run(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
