"""
reqgraph.commands.maintenance - Explicit clean-up of the fact base.

Neither command runs automatically: test runs and reviews are history and
only go away when asked for.
"""

import argparse
import sys

from reqgraph.commands.common import open_store
from reqgraph.store.reconcile import Reconciler


def run_prune(args: argparse.Namespace) -> int:
    """Delete test runs and reviews nothing refers to anymore."""
    store, _config = open_store(args)
    try:
        removed = Reconciler(store).prune()
    finally:
        store.close()

    if not args.quiet:
        print(f"✓ Pruned {removed['test_runs']} test runs, {removed['reviews']} reviews")
    return 0


def run_clear(args: argparse.Namespace) -> int:
    """Delete every fact, history included."""
    if not args.yes:
        try:
            answer = input("Delete all requirements, traces, test runs and reviews? [y/N] ")
        except EOFError:
            answer = ""
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.", file=sys.stderr)
            return 1

    store, _config = open_store(args)
    try:
        Reconciler(store).clear()
    finally:
        store.close()

    if not args.quiet:
        print("✓ Fact base cleared")
    return 0
