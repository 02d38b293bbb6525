"""Trace and coverage status derivation.

Two pipelines share one shape: given the requirements with direct evidence
(a Trace row, resp. a CoverageLink row) they derive

- indirect: a non-leaf whose every child has evidence (direct or indirect),
- any: direct or indirect evidence ("traced" / "covered"),
- fully: every leaf below the requirement has direct evidence; a leaf is
  fully satisfied by its own direct evidence.

On top of the coverage pipeline a failure overlay marks every requirement
with a failing (failed, skipped or pending) directly covering test, and all
of its ancestors. All passes walk the closure's post-order once, so every
node's children are resolved before the node itself.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field

from reqgraph.graph.annotators import EffectiveAnnotations, effective_annotations
from reqgraph.graph.closure import HierarchyClosure, closure_from_edges
from reqgraph.store.facts import FactSnapshot
from reqgraph.store.models import CoverageLink, Diagnostic, TestOutcome, TestRecord, Trace


@dataclass(frozen=True)
class EvidenceStatus:
    """Result of one evidence pipeline (traces or coverage)."""

    direct: frozenset[str] = frozenset()
    indirect: frozenset[str] = frozenset()
    any: frozenset[str] = frozenset()
    fully: frozenset[str] = frozenset()


def derive_evidence(closure: HierarchyClosure, direct_ids: Iterable[str]) -> EvidenceStatus:
    """Derive indirect, any and fully sets from the directly evidenced requirements.

    Ids unknown to the closure are ignored.
    """
    arena = closure.arena
    n = len(arena)
    direct = [False] * n
    for req_id in direct_ids:
        try:
            direct[arena.index_of(req_id)] = True
        except KeyError:
            continue

    indirect = [False] * n
    reached = [False] * n
    fully = [False] * n
    for i in closure.order:
        kids = arena.children[i]
        if kids:
            indirect[i] = all(reached[c] for c in kids)
            fully[i] = all(fully[c] for c in kids)
        else:
            fully[i] = direct[i]
        reached[i] = direct[i] or indirect[i]

    ids = arena.ids
    return EvidenceStatus(
        direct=frozenset(ids[i] for i in range(n) if direct[i]),
        indirect=frozenset(ids[i] for i in range(n) if indirect[i]),
        any=frozenset(ids[i] for i in range(n) if reached[i]),
        fully=frozenset(ids[i] for i in range(n) if fully[i]),
    )


def derive_failed(closure: HierarchyClosure, failing_ids: Iterable[str]) -> frozenset[str]:
    """Mark requirements with failing direct coverage and all of their ancestors."""
    arena = closure.arena
    n = len(arena)
    failed = [False] * n
    for req_id in failing_ids:
        try:
            failed[arena.index_of(req_id)] = True
        except KeyError:
            continue
    for i in closure.order:
        if not failed[i]:
            failed[i] = any(failed[c] for c in arena.children[i])
    return frozenset(arena.ids[i] for i in range(n) if failed[i])


def derive_all_children(
    closure: HierarchyClosure, leaf_members: frozenset[str]
) -> frozenset[str]:
    """Leaves in leaf_members, plus non-leaves whose children all qualify."""
    arena = closure.arena
    n = len(arena)
    member = [False] * n
    for i in closure.order:
        kids = arena.children[i]
        if kids:
            member[i] = all(member[c] for c in kids)
        else:
            member[i] = arena.ids[i] in leaf_members
    return frozenset(arena.ids[i] for i in range(n) if member[i])


@dataclass(frozen=True)
class RequirementStatus:
    """Flags of a single requirement."""

    id: str
    directly_traced: bool
    indirectly_traced: bool
    traced: bool
    fully_traced: bool
    directly_covered: bool
    indirectly_covered: bool
    covered: bool
    fully_covered: bool
    failed: bool
    passed: bool
    fully_passed: bool
    deprecated: bool
    manual: bool
    verified: bool
    invalid: bool

    def to_dict(self) -> dict[str, bool | str]:
        return asdict(self)


@dataclass(frozen=True)
class RequirementStatusSet:
    """All derived status relations of one snapshot."""

    closure: HierarchyClosure
    traced: EvidenceStatus
    covered: EvidenceStatus
    failed: frozenset[str]
    passed: frozenset[str]
    fully_passed: frozenset[str]
    annotations: EffectiveAnnotations
    verified: frozenset[str]
    invalid: frozenset[str]

    @property
    def deprecated(self) -> frozenset[str]:
        return self.annotations.deprecated

    @property
    def manual(self) -> frozenset[str]:
        return self.annotations.manual

    def status_of(self, req_id: str) -> RequirementStatus:
        """Per-requirement flags.

        Raises:
            KeyError: If the requirement is unknown.
        """
        if req_id not in self.closure:
            raise KeyError(f"Unknown requirement '{req_id}'")
        return RequirementStatus(
            id=req_id,
            directly_traced=req_id in self.traced.direct,
            indirectly_traced=req_id in self.traced.indirect,
            traced=req_id in self.traced.any,
            fully_traced=req_id in self.traced.fully,
            directly_covered=req_id in self.covered.direct,
            indirectly_covered=req_id in self.covered.indirect,
            covered=req_id in self.covered.any,
            fully_covered=req_id in self.covered.fully,
            failed=req_id in self.failed,
            passed=req_id in self.passed,
            fully_passed=req_id in self.fully_passed,
            deprecated=req_id in self.deprecated,
            manual=req_id in self.manual,
            verified=req_id in self.verified,
            invalid=req_id in self.invalid,
        )


def failing_requirements(
    coverage: Iterable[CoverageLink], tests: Iterable[TestRecord]
) -> frozenset[str]:
    """Requirements covered by at least one test that did not pass."""
    outcomes = {test.key: test.outcome for test in tests}
    return frozenset(
        link.req_id
        for link in coverage
        # coverage always references a stored test; a missing one never finalized
        if outcomes.get(link.test_key, TestOutcome.PENDING).is_failing
    )


def derive_status(
    snapshot: FactSnapshot, closure: HierarchyClosure | None = None
) -> RequirementStatusSet:
    """Compose all status pipelines for one snapshot.

    Args:
        snapshot: Consistent view of the fact tables.
        closure: Precomputed closure of the snapshot's hierarchy, if any.

    Raises:
        CyclicHierarchy: If the hierarchy has a cycle.
    """
    if closure is None:
        closure = closure_from_edges(snapshot.requirement_ids, snapshot.hierarchy)

    traced = derive_evidence(closure, (t.req_id for t in snapshot.traces))
    covered = derive_evidence(closure, (c.req_id for c in snapshot.coverage))
    failed = derive_failed(closure, failing_requirements(snapshot.coverage, snapshot.tests))
    passed = covered.any - failed
    # a leaf passes fully when its own coverage passes
    fully_passed = derive_all_children(closure, passed & closure.leaf_ids())
    annotations = effective_annotations(closure, snapshot.requirements)
    verified = frozenset(v.req_id for v in snapshot.verifications)

    return RequirementStatusSet(
        closure=closure,
        traced=traced,
        covered=covered,
        failed=failed,
        passed=passed,
        fully_passed=fully_passed,
        annotations=annotations,
        verified=verified,
        invalid=annotations.deprecated & traced.any,
    )


@dataclass
class EvidenceIndex:
    """Trace and coverage rows grouped by requirement, for drill-down reports."""

    traces: dict[str, list[Trace]] = field(default_factory=dict)
    coverage: dict[str, list[CoverageLink]] = field(default_factory=dict)
    outcomes: dict[tuple[str, str, str], TestOutcome] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: FactSnapshot) -> EvidenceIndex:
        traces: dict[str, list[Trace]] = defaultdict(list)
        for trace in snapshot.traces:
            traces[trace.req_id].append(trace)
        coverage: dict[str, list[CoverageLink]] = defaultdict(list)
        for link in snapshot.coverage:
            coverage[link.req_id].append(link)
        return cls(
            traces=dict(traces),
            coverage=dict(coverage),
            outcomes={test.key: test.outcome for test in snapshot.tests},
        )

    def direct_traces(self, req_id: str) -> list[Trace]:
        return list(self.traces.get(req_id, ()))

    def direct_coverage(self, req_id: str) -> list[CoverageLink]:
        return list(self.coverage.get(req_id, ()))

    def indirect_traces(self, req_id: str, status: RequirementStatusSet) -> list[Trace]:
        """Traces of descendants that make req_id indirectly traced."""
        if req_id not in status.traced.indirect:
            return []
        result: list[Trace] = []
        for child in sorted(status.closure.descendants_of(req_id)):
            result.extend(self.traces.get(child, ()))
        return result

    def indirect_coverage(self, req_id: str, status: RequirementStatusSet) -> list[CoverageLink]:
        """Coverage of descendants that makes req_id indirectly covered."""
        if req_id not in status.covered.indirect:
            return []
        result: list[CoverageLink] = []
        for child in sorted(status.closure.descendants_of(req_id)):
            result.extend(self.coverage.get(child, ()))
        return result

    def failed_coverage(self, req_id: str, status: RequirementStatusSet) -> list[CoverageLink]:
        """Failing coverage of req_id itself and of its descendants."""
        if req_id not in status.failed:
            return []
        result: list[CoverageLink] = []
        for member in [req_id, *sorted(status.closure.descendants_of(req_id))]:
            for link in self.coverage.get(member, ()):
                if self.outcomes.get(link.test_key, TestOutcome.PENDING).is_failing:
                    result.append(link)
        return result


def pending_test_diagnostics(snapshot: FactSnapshot) -> list[Diagnostic]:
    """One warning per test record that never finalized."""
    return [
        Diagnostic(
            kind="pending_test",
            message=(
                f"Test '{test.name}' of run '{test.test_run_name}' "
                f"[{test.test_run_date}] is still pending"
            ),
            subject=test.name,
        )
        for test in snapshot.tests
        if test.outcome is TestOutcome.PENDING
    ]


__all__ = [
    "EvidenceIndex",
    "EvidenceStatus",
    "RequirementStatus",
    "RequirementStatusSet",
    "derive_all_children",
    "derive_evidence",
    "derive_failed",
    "derive_status",
    "failing_requirements",
    "pending_test_diagnostics",
]
