"""
reqgraph.commands.reconcile_cmd - Sweep facts a batch did not re-confirm.

Dry-run by default: the stale rows are listed and nothing is deleted until
the command is repeated with --confirm.
"""

import argparse
import json
import sys

from reqgraph.commands.common import open_store
from reqgraph.store.reconcile import Reconciler, ReconcileDiff


def run(args: argparse.Namespace) -> int:
    """
    Run the reconcile command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, 1 when the generation is unknown)
    """
    store, _config = open_store(args)
    try:
        generation = args.generation
        if generation is None:
            generation = store.latest_batch()
            if generation is None:
                if not args.quiet:
                    print("Nothing collected yet.")
                return 0
        elif store.batch_scope(generation) is None:
            print(f"Error: No ingestion batch with generation {generation}", file=sys.stderr)
            return 1

        reconciler = Reconciler(store)
        removed = None
        # the deleted rows must be exactly the ones diffed
        with store.transaction():
            diff = reconciler.find_stale(generation)
            if args.confirm and diff.has_removals:
                removed = reconciler.apply(diff)
    finally:
        store.close()

    if args.json:
        data = diff.to_dict()
        data["applied"] = removed
        print(json.dumps(data, indent=2))
        return 0

    if not args.quiet:
        _print_diff(diff, args.verbose)
        if removed is not None:
            print(
                f"✓ Removed {removed['requirements']} requirements, "
                f"{removed['traces']} traces, "
                f"{removed['unrelated_traces']} unrelated traces"
            )
        elif diff.has_removals:
            print("Dry run; re-run with --confirm to delete the stale rows.")
    return 0


def _print_diff(diff: ReconcileDiff, verbose: bool) -> None:
    print(f"Generation {diff.generation}:")
    print(
        f"  Requirements: {len(diff.added_requirements)} added, "
        f"{len(diff.unchanged_requirements)} unchanged, "
        f"{len(diff.removed_requirements)} removed"
    )
    print(
        f"  Traces: {len(diff.added_traces)} added, "
        f"{len(diff.unchanged_traces)} unchanged, "
        f"{len(diff.removed_traces)} removed"
    )
    if diff.removed_unrelated_traces:
        print(f"  Unrelated traces: {len(diff.removed_unrelated_traces)} removed")

    for req_id in diff.removed_requirements:
        print(f"  - {req_id}")
    for req_id, filepath, line in diff.removed_traces + diff.removed_unrelated_traces:
        print(f"  - {req_id}@{filepath}:{line}")
    if verbose:
        for req_id in diff.added_requirements:
            print(f"  + {req_id}")
        for req_id, filepath, line in diff.added_traces:
            print(f"  + {req_id}@{filepath}:{line}")
