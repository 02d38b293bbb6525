"""
reqgraph.commands.report_cmd - Render the traceability report.
"""

import argparse
import sys
from pathlib import Path

from reqgraph.commands.common import open_store, print_diagnostics
from reqgraph.report import build_report


def run(args: argparse.Namespace) -> int:
    """
    Run the report command.

    The format comes from --json/--html, falling back to [report] format.
    Output goes to -o PATH, [report] output, or stdout.
    """
    store, config = open_store(args)
    try:
        snapshot = store.snapshot()
    finally:
        store.close()

    report = build_report(snapshot)

    if args.html:
        fmt = "html"
    elif args.json:
        fmt = "json"
    else:
        fmt = config["report"]["format"]

    if fmt == "html":
        from reqgraph.html import HTMLGenerator

        content = HTMLGenerator(report).generate()
    else:
        content = report.to_json()

    output = args.output
    if output is None and config["report"]["output"]:
        output = Path(config["report"]["output"])

    print_diagnostics(args, report.diagnostics)

    if output is None:
        print(content)
        return 0

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(content, encoding="utf-8")
    if not args.quiet:
        print(f"Generated: {output}", file=sys.stderr)
    return 0
