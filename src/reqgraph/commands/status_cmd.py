"""
reqgraph.commands.status_cmd - Show the derived status of one requirement.
"""

import argparse
import json
import sys

from reqgraph.commands.common import open_store
from reqgraph.graph.status import EvidenceIndex, derive_status
from reqgraph.report import build_requirement_info


def _mark(flag: bool) -> str:
    return "✓" if flag else "·"


def run(args: argparse.Namespace) -> int:
    """
    Run the status command.

    Returns:
        Exit code (0 for success, 1 for an unknown requirement)
    """
    store, _config = open_store(args)
    try:
        snapshot = store.snapshot()
    finally:
        store.close()

    req_id = args.req_id
    if snapshot.find_requirement(req_id) is None:
        print(f"Error: Unknown requirement '{req_id}'", file=sys.stderr)
        return 1

    status = derive_status(snapshot)
    flags = status.status_of(req_id)
    verifications = [v for v in snapshot.verifications if v.req_id == req_id]
    info = build_requirement_info(
        req_id, snapshot, status, EvidenceIndex.from_snapshot(snapshot), verifications
    )

    if args.json:
        data = info.to_dict()
        data["status"] = flags.to_dict()
        print(json.dumps(data, indent=2))
        return 0

    print(f"{info.id}: {info.title}")
    if info.origin:
        print(f"  origin:   {info.origin}")
    if info.parents:
        print(f"  parents:  {', '.join(info.parents)}")
    if info.children:
        print(f"  children: {', '.join(info.children)}")
    print()
    print(
        f"  {_mark(flags.traced)} traced "
        f"(direct {_mark(flags.directly_traced)}, indirect {_mark(flags.indirectly_traced)}, "
        f"fully {_mark(flags.fully_traced)})"
    )
    print(
        f"  {_mark(flags.covered)} covered "
        f"(direct {_mark(flags.directly_covered)}, indirect {_mark(flags.indirectly_covered)}, "
        f"fully {_mark(flags.fully_covered)})"
    )
    print(f"  {_mark(flags.passed)} passed (fully {_mark(flags.fully_passed)})")
    print(f"  {_mark(flags.failed)} failed")
    if flags.manual:
        print(f"  {_mark(flags.verified)} manually verified")
    if flags.deprecated:
        print("  deprecated")
    if flags.invalid:
        print("  ✗ invalid: deprecated requirement is still traced")

    leaves = info.leaf_children
    if leaves.leaf_count and info.children:
        print()
        print(
            f"  Leaves: {leaves.leaf_count}, "
            f"traced {leaves.traced_leaf_count} ({leaves.traced_leaf_ratio:.0%}), "
            f"covered {leaves.covered_leaf_count} ({leaves.covered_leaf_ratio:.0%}), "
            f"passed {leaves.passed_covered_leaf_count} ({leaves.passed_covered_leaf_ratio:.0%})"
        )

    if args.verbose:
        for trace in info.trace.direct:
            print(f"  trace     {trace}")
        for link in info.coverage.failed:
            print(f"  failing   {link}")
        for verification in info.verifications:
            print(f"  verified  {verification}")
    return 0
