"""
reqgraph.commands.validate - Check the fact base for invalid requirements.

A requirement is invalid when it is deprecated (directly or through an
ancestor) but still traced. With [validation] fail_on_unrelated, quarantined
facts fail validation as well.
"""

import argparse
import json
import sys

from reqgraph.commands.common import open_store, print_diagnostics
from reqgraph.graph.closure import CyclicHierarchy
from reqgraph.graph.status import derive_status
from reqgraph.report import unrelated_diagnostics


def run(args: argparse.Namespace) -> int:
    """
    Run the validate command.

    Returns:
        Exit code (0 when valid, 1 otherwise)
    """
    store, config = open_store(args)
    try:
        snapshot = store.snapshot()
    finally:
        store.close()

    try:
        status = derive_status(snapshot)
    except CyclicHierarchy as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    invalid = sorted(status.invalid)
    unrelated = unrelated_diagnostics(snapshot)
    fail_on_unrelated = config["validation"]["fail_on_unrelated"]
    is_valid = not invalid and not (fail_on_unrelated and unrelated)

    if getattr(args, "json", False):
        print(
            json.dumps(
                {
                    "is_valid": is_valid,
                    "invalid_reqs": invalid,
                    "unrelated": [d.message for d in unrelated],
                },
                indent=2,
            )
        )
        return 0 if is_valid else 1

    for req_id in invalid:
        traces = [str(t) for t in snapshot.traces if t.req_id == req_id]
        where = f" ({', '.join(traces)})" if traces else ""
        print(f"✗ {req_id}: deprecated but still traced{where}", file=sys.stderr)
    print_diagnostics(args, unrelated)

    if not args.quiet:
        if is_valid:
            print(f"✓ {len(snapshot.requirements)} requirements valid")
        else:
            print(f"✗ {len(invalid)} invalid requirements, {len(unrelated)} unrelated facts")
    return 0 if is_valid else 1
