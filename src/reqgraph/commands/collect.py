"""
reqgraph.commands.collect - Ingest producer records.

Each invocation is one ingestion batch: requirements and traces get a new
generation, coverage and reviews are appended to the history.
"""

import argparse
import sys
from pathlib import Path
from typing import List

from reqgraph.commands.common import open_store, print_diagnostics
from reqgraph.graph.closure import CyclicHierarchy
from reqgraph.ingest import ingest_coverage, ingest_requirements, ingest_review, ingest_traces
from reqgraph.parsers import (
    CoverageParser,
    CoverageRecords,
    RecordError,
    RequirementsParser,
    ReviewParser,
    TracesParser,
    parse_file,
)
from reqgraph.store.reconcile import BatchResult, StaleGenerationConflict


def run(args: argparse.Namespace) -> int:
    """
    Run the collect command.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, 1 for parse or ingestion errors)
    """
    handlers = {
        "requirements": collect_requirements,
        "traces": collect_traces,
        "coverage": collect_coverage,
        "review": collect_reviews,
    }
    handler = handlers.get(args.collect_kind)
    if handler is None:
        print("Usage: reqgraph collect {requirements,traces,coverage,review} FILE...",
              file=sys.stderr)
        return 1

    missing = [p for p in args.files if not p.is_file()]
    if missing:
        for path in missing:
            print(f"Error: File not found: {path}", file=sys.stderr)
        return 1

    store, config = open_store(args)
    try:
        result = handler(store, args.files, config)
    except RecordError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except CyclicHierarchy as e:
        print(f"Error: {e}", file=sys.stderr)
        print("No requirements were recorded.", file=sys.stderr)
        return 1
    except StaleGenerationConflict as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()

    warnings = print_diagnostics(args, result.diagnostics)
    if not args.quiet:
        print(_summary(args.collect_kind, result))
        if warnings:
            print(f"⚠️  {warnings} warnings")
    return 0


def _summary(kind: str, result: BatchResult) -> str:
    parts = []
    if result.inserted:
        parts.append(f"{result.inserted} new")
    if result.confirmed:
        parts.append(f"{result.confirmed} confirmed")
    if result.quarantined:
        parts.append(f"{result.quarantined} unrelated")
    details = ", ".join(parts) if parts else "nothing to record"
    return f"✓ Collected {kind} (generation {result.generation}): {details}"


def collect_requirements(store, files: List[Path], config) -> BatchResult:
    parser = RequirementsParser()
    records = []
    seen = set()
    for path in files:
        for record in parse_file(parser, path):
            if record.requirement.id in seen:
                raise RecordError(
                    str(path),
                    "",
                    f"requirement '{record.requirement.id}' declared in several files",
                )
            seen.add(record.requirement.id)
            records.append(record)
    hierarchy = config["hierarchy"]
    return ingest_requirements(
        store,
        records,
        derive_from_id=hierarchy["derive_from_id"],
        separator=hierarchy["separator"],
    )


def collect_traces(store, files: List[Path], config) -> BatchResult:
    parser = TracesParser()
    traces = []
    for path in files:
        traces.extend(parse_file(parser, path))
    return ingest_traces(store, traces)


def collect_coverage(store, files: List[Path], config) -> BatchResult:
    parser = CoverageParser()
    combined = CoverageRecords()
    for path in files:
        records = parse_file(parser, path)
        combined.runs.extend(records.runs)
        combined.tests.extend(records.tests)
        combined.links.extend(records.links)
    return ingest_coverage(store, combined)


def collect_reviews(store, files: List[Path], config) -> BatchResult:
    parser = ReviewParser()
    total = None
    for path in files:
        result = ingest_review(store, parse_file(parser, path))
        if total is None:
            total = result
        else:
            total.inserted += result.inserted
            total.quarantined += result.quarantined
            total.diagnostics.extend(result.diagnostics)
    return total
