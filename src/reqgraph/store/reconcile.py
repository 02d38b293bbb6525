"""Generation-based reconciliation of the fact base.

Every ingestion batch gets a generation token from ``Reconciler.begin_batch``.
Rows touched by the batch are stamped with the token; rows of the batch's
scope still carrying an older token are stale. ``find_stale`` reports the
difference without touching the store, ``apply`` deletes the stale rows.

Test runs, tests and reviews are history and never take part in the sweep.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from reqgraph.store.facts import FactStore
from reqgraph.store.models import (
    CoverageLink,
    Diagnostic,
    ManualVerification,
    Requirement,
    Trace,
)

TraceKey = tuple[str, str, int]


class StaleGenerationConflict(ValueError):
    """A row would be stamped with a generation older than its stored one."""

    def __init__(self, subject: str, stored: int, batch: int) -> None:
        self.subject = subject
        self.stored = stored
        self.batch = batch
        super().__init__(
            f"Generation regression for {subject}: stored generation {stored}, "
            f"batch generation {batch}"
        )


class BatchScope(Enum):
    """Which fact kinds an ingestion batch re-confirms."""

    REQUIREMENTS = "requirements"
    TRACES = "traces"
    ALL = "all"

    @property
    def covers_requirements(self) -> bool:
        return self in (BatchScope.REQUIREMENTS, BatchScope.ALL)

    @property
    def covers_traces(self) -> bool:
        return self in (BatchScope.TRACES, BatchScope.ALL)


@dataclass(frozen=True)
class ReconcileDiff:
    """Dry-run result of a staleness check.

    Attributes:
        generation: Batch generation the diff was computed against.
        added_requirements: Requirements first inserted by the batch.
        unchanged_requirements: Older requirements re-confirmed by the batch.
        removed_requirements: Requirements the batch did not confirm.
        added_traces / unchanged_traces / removed_traces: Same split for traces.
        removed_unrelated_traces: Quarantined traces the batch did not confirm.
    """

    generation: int
    added_requirements: tuple[str, ...] = ()
    unchanged_requirements: tuple[str, ...] = ()
    removed_requirements: tuple[str, ...] = ()
    added_traces: tuple[TraceKey, ...] = ()
    unchanged_traces: tuple[TraceKey, ...] = ()
    removed_traces: tuple[TraceKey, ...] = ()
    removed_unrelated_traces: tuple[TraceKey, ...] = ()

    @property
    def has_removals(self) -> bool:
        return bool(
            self.removed_requirements or self.removed_traces or self.removed_unrelated_traces
        )

    def to_dict(self) -> dict:
        def traces(keys: tuple[TraceKey, ...]) -> list[dict]:
            return [{"req_id": r, "filepath": f, "line": ln} for r, f, ln in keys]

        return {
            "generation": self.generation,
            "requirements": {
                "added": list(self.added_requirements),
                "unchanged": list(self.unchanged_requirements),
                "removed": list(self.removed_requirements),
            },
            "traces": {
                "added": traces(self.added_traces),
                "unchanged": traces(self.unchanged_traces),
                "removed": traces(self.removed_traces),
                "removed_unrelated": traces(self.removed_unrelated_traces),
            },
        }


@dataclass(frozen=True)
class PromotionResult:
    """Outcome of re-checking the quarantine."""

    promoted_traces: tuple[Trace, ...] = ()
    promoted_coverage: tuple[CoverageLink, ...] = ()
    promoted_verifications: tuple[ManualVerification, ...] = ()
    remaining: tuple[Diagnostic, ...] = ()

    @property
    def promoted_count(self) -> int:
        return (
            len(self.promoted_traces)
            + len(self.promoted_coverage)
            + len(self.promoted_verifications)
        )


@dataclass
class BatchResult:
    """Counters collected while ingesting one batch."""

    generation: int
    inserted: int = 0
    confirmed: int = 0
    quarantined: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)


class Reconciler:
    """Hands out generations and sweeps stale rows of a FactStore."""

    def __init__(self, store: FactStore) -> None:
        self.store = store

    # ─────────────────────────────────────────────────────────────────────────
    # Batches
    # ─────────────────────────────────────────────────────────────────────────

    def begin_batch(self, scope: BatchScope = BatchScope.ALL) -> int:
        """Open a new ingestion batch.

        Returns:
            A generation strictly greater than any generation seen so far.
        """
        with self.store.transaction():
            generation = self.store.max_generation() + 1
            self.store.record_batch(
                generation, scope.value, datetime.now(timezone.utc).isoformat()
            )
        return generation

    def stamp_requirement(self, req: Requirement, generation: int) -> bool:
        """Insert or re-confirm a requirement in the given batch.

        Returns:
            True when the requirement is new.

        Raises:
            StaleGenerationConflict: If the stored row is newer than the batch.
        """
        stored = self.store.stored_generation("Requirements", "id = ?", (req.id,))
        if stored is not None and stored > generation:
            raise StaleGenerationConflict(f"requirement '{req.id}'", stored, generation)
        return self.store.upsert_requirement(_with_generation(req, generation))

    def stamp_trace(self, trace: Trace, generation: int) -> bool:
        """Insert or re-confirm a trace in the given batch.

        Returns:
            True when the trace entered the primary relation, False when it
            was quarantined.

        Raises:
            StaleGenerationConflict: If the stored row is newer than the batch.
        """
        for table in ("Traces", "UnrelatedTraces"):
            stored = self.store.stored_generation(
                table, "req_id = ? and filepath = ? and line = ?", trace.key
            )
            if stored is not None and stored > generation:
                raise StaleGenerationConflict(f"trace {trace}", stored, generation)
        return self.store.add_trace(_with_generation(trace, generation))

    # ─────────────────────────────────────────────────────────────────────────
    # Staleness
    # ─────────────────────────────────────────────────────────────────────────

    def find_stale(self, current_generation: int) -> ReconcileDiff:
        """Compare stored stamps against a batch generation.

        Only the fact kinds the batch covered are inspected. Nothing is
        modified.
        """
        scope_value = self.store.batch_scope(current_generation)
        scope = BatchScope(scope_value) if scope_value else BatchScope.ALL

        added_reqs: list[str] = []
        unchanged_reqs: list[str] = []
        removed_reqs: list[str] = []
        if scope.covers_requirements:
            for req_id, generation, introduced in self.store.requirement_stamps():
                if generation < current_generation:
                    removed_reqs.append(req_id)
                elif introduced == current_generation:
                    added_reqs.append(req_id)
                else:
                    unchanged_reqs.append(req_id)

        added_traces: list[TraceKey] = []
        unchanged_traces: list[TraceKey] = []
        removed_traces: list[TraceKey] = []
        removed_unrelated: list[TraceKey] = []
        if scope.covers_traces:
            for req_id, filepath, line, generation, introduced in self.store.trace_stamps():
                key = (req_id, filepath, line)
                if generation < current_generation:
                    removed_traces.append(key)
                elif introduced == current_generation:
                    added_traces.append(key)
                else:
                    unchanged_traces.append(key)
            for req_id, filepath, line, generation in self.store.unrelated_trace_stamps():
                if generation < current_generation:
                    removed_unrelated.append((req_id, filepath, line))

        return ReconcileDiff(
            generation=current_generation,
            added_requirements=tuple(added_reqs),
            unchanged_requirements=tuple(unchanged_reqs),
            removed_requirements=tuple(removed_reqs),
            added_traces=tuple(added_traces),
            unchanged_traces=tuple(unchanged_traces),
            removed_traces=tuple(removed_traces),
            removed_unrelated_traces=tuple(removed_unrelated),
        )

    def apply(self, diff: ReconcileDiff) -> dict[str, int]:
        """Delete the rows a diff reports as removed, in one transaction.

        Deleting a requirement cascades to its hierarchy edges, traces,
        coverage and manual verifications. Deleting a trace cascades to the
        coverage that references it.

        Returns:
            Number of deleted rows per kind.
        """
        with self.store.transaction():
            removed_traces = self.store.delete_traces(diff.removed_traces)
            for req_id, filepath, line in diff.removed_unrelated_traces:
                self.store.delete_unrelated_trace(Trace(req_id, filepath, line))
            removed_reqs = self.store.delete_requirements(diff.removed_requirements)
        return {
            "requirements": removed_reqs,
            "traces": removed_traces,
            "unrelated_traces": len(diff.removed_unrelated_traces),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Quarantine
    # ─────────────────────────────────────────────────────────────────────────

    def promote_unrelated(self) -> PromotionResult:
        """Move quarantined facts whose referent now exists into the primary relations.

        Traces are promoted first so that coverage waiting on a quarantined
        trace can follow in the same pass.
        """
        promoted_traces: list[Trace] = []
        promoted_coverage: list[CoverageLink] = []
        promoted_verifications: list[ManualVerification] = []
        remaining: list[Diagnostic] = []

        with self.store.transaction():
            snap = self.store.snapshot()

            for trace in snap.unrelated_traces:
                if self.store.requirement_exists(trace.req_id):
                    self.store.insert_trace(trace)
                    self.store.delete_unrelated_trace(trace)
                    promoted_traces.append(trace)
                else:
                    remaining.append(
                        dangling_reference(
                            f"Trace {trace} references unknown requirement '{trace.req_id}'",
                            trace.req_id,
                        )
                    )

            for link in snap.unrelated_coverage:
                if self.store.trace_exists(*link.trace_key):
                    self.store.delete_unrelated_coverage(link)
                    self.store.add_coverage(link)
                    promoted_coverage.append(link)
                else:
                    remaining.append(
                        dangling_reference(
                            f"Coverage {link} references unknown trace "
                            f"{link.req_id}@{link.filepath}:{link.line}",
                            link.req_id,
                        )
                    )

            for verification in snap.unrelated_verifications:
                if self.store.requirement_exists(verification.req_id):
                    self.store.delete_unrelated_verification(verification)
                    self.store.add_verification(verification)
                    promoted_verifications.append(verification)
                else:
                    remaining.append(
                        dangling_reference(
                            f"Manual verification of '{verification.req_id}' in review "
                            f"'{verification.review_name}' references unknown requirement",
                            verification.req_id,
                        )
                    )

        return PromotionResult(
            promoted_traces=tuple(promoted_traces),
            promoted_coverage=tuple(promoted_coverage),
            promoted_verifications=tuple(promoted_verifications),
            remaining=tuple(remaining),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Explicit maintenance
    # ─────────────────────────────────────────────────────────────────────────

    def prune(self) -> dict[str, int]:
        """Delete test runs and reviews that no longer back any coverage or verification."""
        with self.store.transaction():
            return self.store.delete_unreferenced_history()

    def clear(self) -> None:
        """Delete every fact, history included."""
        self.store.clear()


def dangling_reference(message: str, subject: str) -> Diagnostic:
    return Diagnostic(kind="dangling_reference", message=message, subject=subject)


def _with_generation(record, generation: int):
    return replace(record, generation=generation)


__all__ = [
    "BatchResult",
    "BatchScope",
    "PromotionResult",
    "ReconcileDiff",
    "Reconciler",
    "StaleGenerationConflict",
    "dangling_reference",
]
