"""Ingestion of parsed producer records into the fact store.

Every function here runs one batch inside one write transaction, so a
failing batch leaves the store untouched. Requirement and trace batches get
a generation from the Reconciler; after every batch the quarantine is
re-checked.

Usage:
    store = FactStore(db_path)
    records = parse_file(RequirementsParser(), Path("reqs.json"))
    result = ingest_requirements(store, records)
    for diagnostic in result.diagnostics:
        print(diagnostic, file=sys.stderr)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from reqgraph.graph.closure import closure_from_edges
from reqgraph.parsers.coverage import CoverageRecords
from reqgraph.parsers.requirements import RequirementRecord
from reqgraph.parsers.reviews import ReviewRecord
from reqgraph.store.facts import FactStore
from reqgraph.store.models import Diagnostic, HierarchyEdge, Trace
from reqgraph.store.reconcile import (
    BatchResult,
    BatchScope,
    Reconciler,
    dangling_reference,
)


def derive_parent_id(req_id: str, known_ids: set[str], separator: str = ".") -> str | None:
    """Find the nearest existing prefix of a dotted requirement id.

    ``a.b.c`` gets parent ``a.b`` when that exists, otherwise ``a``.

    Args:
        req_id: Requirement id to find a parent for.
        known_ids: Ids of all requirements that exist after the batch.
        separator: Id segment separator.

    Returns:
        The parent id, or None for a top-level requirement.
    """
    if not separator:
        return None
    head = req_id
    while separator in head:
        head = head.rsplit(separator, 1)[0]
        if head in known_ids:
            return head
    return None


def ingest_requirements(
    store: FactStore,
    records: Sequence[RequirementRecord],
    *,
    derive_from_id: bool = True,
    separator: str = ".",
) -> BatchResult:
    """Insert or re-confirm requirements and their hierarchy edges.

    Declared parents replace a requirement's stored parent edges. Without a
    declaration the parent is derived from the id when derive_from_id is
    set. A declared parent that does not exist is reported and skipped.

    Raises:
        CyclicHierarchy: If the resulting hierarchy has a cycle; the batch
            is rolled back.
        StaleGenerationConflict: If a stored row is newer than the batch.
    """
    reconciler = Reconciler(store)
    with store.transaction():
        generation = reconciler.begin_batch(BatchScope.REQUIREMENTS)
        result = BatchResult(generation=generation)

        for record in records:
            if reconciler.stamp_requirement(record.requirement, generation):
                result.inserted += 1
            else:
                result.confirmed += 1

        known_ids = {req_id for req_id, _, _ in store.requirement_stamps()}
        for record in records:
            child_id = record.requirement.id
            if record.parent_ids is not None:
                parents: Iterable[str] = record.parent_ids
            elif derive_from_id:
                derived = derive_parent_id(child_id, known_ids, separator)
                parents = [derived] if derived else []
            else:
                parents = []

            store.remove_parent_edges(child_id)
            for parent_id in parents:
                if parent_id not in known_ids:
                    result.diagnostics.append(
                        dangling_reference(
                            f"Requirement '{child_id}' names unknown parent '{parent_id}'",
                            child_id,
                        )
                    )
                    continue
                store.add_hierarchy_edge(HierarchyEdge(child_id=child_id, parent_id=parent_id))

        # reject the batch before commit if it closed a cycle
        snap = store.snapshot()
        closure_from_edges(snap.requirement_ids, snap.hierarchy)

        result.diagnostics.extend(reconciler.promote_unrelated().remaining)
    return result


def ingest_traces(store: FactStore, traces: Iterable[Trace]) -> BatchResult:
    """Insert or re-confirm traces; traces of unknown requirements are quarantined.

    Raises:
        StaleGenerationConflict: If a stored row is newer than the batch.
    """
    reconciler = Reconciler(store)
    with store.transaction():
        generation = reconciler.begin_batch(BatchScope.TRACES)
        result = BatchResult(generation=generation)
        for trace in traces:
            if reconciler.stamp_trace(trace, generation):
                result.confirmed += 1
            else:
                result.quarantined += 1
        result.diagnostics.extend(reconciler.promote_unrelated().remaining)
    return result


def ingest_coverage(store: FactStore, records: CoverageRecords) -> BatchResult:
    """Record test runs, their tests and the traces they covered.

    Coverage of unknown traces is quarantined. Test history carries no
    generation; the returned generation is the current one.
    """
    reconciler = Reconciler(store)
    with store.transaction():
        result = BatchResult(generation=store.max_generation())
        for run in records.runs:
            store.add_test_run(run)
        for test in records.tests:
            store.add_test(test)
        for link in records.links:
            if store.add_coverage(link):
                result.inserted += 1
            else:
                result.quarantined += 1
        result.diagnostics.extend(reconciler.promote_unrelated().remaining)
    return result


def ingest_review(store: FactStore, record: ReviewRecord) -> BatchResult:
    """Record a review and the requirements it verified.

    Verifications of unknown requirements are quarantined.
    """
    reconciler = Reconciler(store)
    with store.transaction():
        result = BatchResult(generation=store.max_generation())
        if store.review_exists(*record.review.key):
            result.diagnostics.append(
                Diagnostic(
                    kind="duplicate_review",
                    message=(
                        f"Review '{record.review.name}' [{record.review.date}] "
                        "was already recorded and is replaced"
                    ),
                    subject=record.review.name,
                    severity="info",
                )
            )
        store.add_review(record.review)
        for verification in record.verifications:
            if store.add_verification(verification):
                result.inserted += 1
            else:
                result.quarantined += 1
        result.diagnostics.extend(reconciler.promote_unrelated().remaining)
    return result


__all__ = [
    "derive_parent_id",
    "ingest_coverage",
    "ingest_requirements",
    "ingest_review",
    "ingest_traces",
]
