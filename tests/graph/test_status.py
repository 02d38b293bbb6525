"""Tests for trace and coverage status derivation."""

from dataclasses import replace

import pytest

from reqgraph.graph.closure import closure_from_edges
from reqgraph.graph.status import (
    EvidenceIndex,
    derive_all_children,
    derive_evidence,
    derive_failed,
    derive_status,
    failing_requirements,
    pending_test_diagnostics,
)
from reqgraph.store.models import Annotation, HierarchyEdge, TestOutcome
from tests.helpers import build_snapshot, make_requirement


def tree(*pairs, extra=()):
    ids = {c for c, _ in pairs} | {p for _, p in pairs} | set(extra)
    return closure_from_edges(ids, [HierarchyEdge(child_id=c, parent_id=p) for c, p in pairs])


class TestRootWithTwoChildren:
    """root -> {a, b}, a traced and covered by a passing test."""

    def test_only_a_is_directly_evidenced(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        assert status.traced.direct == {"a"}
        assert status.covered.direct == {"a"}

    def test_root_is_not_indirect_while_b_lacks_evidence(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        assert "root" not in status.traced.indirect
        assert "root" not in status.covered.indirect
        assert "root" not in status.traced.any

    def test_passed_is_a_only(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        assert status.passed == {"a"}
        assert status.failed == frozenset()

    def test_root_becomes_indirect_when_b_is_traced(self):
        snapshot = build_snapshot(
            ["root", "a", "b"],
            edges=[("a", "root"), ("b", "root")],
            traced=["b"],
            covered={"a": TestOutcome.PASSED},
        )
        status = derive_status(snapshot)
        assert status.traced.indirect == {"root"}
        assert status.traced.any == {"root", "a", "b"}
        assert status.traced.fully == {"root", "a", "b"}
        # b is traced but not covered, so root is not covered
        assert "root" not in status.covered.any

    def test_failing_child_fails_root(self):
        snapshot = build_snapshot(
            ["root", "a", "b"],
            edges=[("a", "root"), ("b", "root")],
            covered={"a": TestOutcome.PASSED, "b": TestOutcome.FAILED},
        )
        status = derive_status(snapshot)
        assert status.failed == {"b", "root"}
        assert status.passed == {"a"}
        assert status.covered.indirect == {"root"}


class TestDeriveEvidence:
    """Tests for the shared direct/indirect/fully pipeline."""

    def test_leaves_are_never_indirect(self):
        closure = tree(("a", "root"), ("b", "root"), extra=["lonely"])
        evidence = derive_evidence(closure, ["a", "b", "lonely"])
        assert evidence.indirect.isdisjoint(closure.leaf_ids())

    def test_indirect_requires_every_child(self):
        closure = tree(("a", "root"), ("b", "root"), ("c", "root"))
        assert "root" not in derive_evidence(closure, ["a", "b"]).indirect
        assert "root" in derive_evidence(closure, ["a", "b", "c"]).indirect

    def test_indirect_through_several_levels(self):
        closure = tree(("m", "root"), ("l1", "m"), ("l2", "m"))
        evidence = derive_evidence(closure, ["l1", "l2"])
        assert evidence.indirect == {"m", "root"}

    def test_direct_parent_does_not_make_children_evidenced(self):
        closure = tree(("a", "root"))
        evidence = derive_evidence(closure, ["root"])
        assert evidence.any == {"root"}
        assert evidence.fully == frozenset()

    def test_fully_needs_every_leaf_directly(self):
        """Indirect evidence of a non-leaf child is not enough for fully."""
        closure = tree(("m", "root"), ("x", "root"), ("l", "m"))
        evidence = derive_evidence(closure, ["l", "m", "x"])
        assert evidence.fully == {"l", "m", "x", "root"}
        evidence = derive_evidence(closure, ["m", "x"])
        assert "m" not in evidence.fully
        assert "root" not in evidence.fully

    def test_unknown_ids_are_ignored(self):
        closure = tree(("a", "root"))
        evidence = derive_evidence(closure, ["ghost", "a"])
        assert evidence.direct == {"a"}

    def test_monotone_in_direct_evidence(self):
        """Adding direct evidence never removes a requirement from any set."""
        closure = tree(("a", "root"), ("b", "root"), ("c", "a"), ("d", "a"))
        smaller = derive_evidence(closure, ["c"])
        larger = derive_evidence(closure, ["c", "d", "b"])
        assert smaller.any <= larger.any
        assert smaller.indirect <= larger.indirect
        assert smaller.fully <= larger.fully

    def test_idempotent(self):
        closure = tree(("a", "root"), ("b", "root"))
        assert derive_evidence(closure, ["a", "b"]) == derive_evidence(closure, ["b", "a", "a"])

    def test_no_requirements(self):
        evidence = derive_evidence(closure_from_edges([], []), [])
        assert evidence.any == frozenset()


class TestFailureOverlay:
    """Tests for failed / passed derivation."""

    def test_failed_propagates_to_all_ancestors(self):
        closure = tree(("m", "root"), ("l", "m"), ("other", "root"))
        assert derive_failed(closure, ["l"]) == {"l", "m", "root"}

    def test_skipped_and_pending_count_as_failing(self):
        snapshot = build_snapshot(
            ["a", "b", "c"],
            covered={
                "a": TestOutcome.SKIPPED,
                "b": TestOutcome.PENDING,
                "c": TestOutcome.PASSED,
            },
        )
        assert failing_requirements(snapshot.coverage, snapshot.tests) == {"a", "b"}

    def test_coverage_of_unknown_test_counts_as_pending(self):
        snapshot = build_snapshot(["a"], covered={"a": TestOutcome.PASSED})
        assert failing_requirements(snapshot.coverage, ()) == {"a"}

    def test_passed_and_failed_are_disjoint(self):
        snapshot = build_snapshot(
            ["root", "a", "b", "c"],
            edges=[("a", "root"), ("b", "root"), ("c", "b")],
            covered={"a": TestOutcome.PASSED, "c": TestOutcome.FAILED},
        )
        status = derive_status(snapshot)
        assert status.passed.isdisjoint(status.failed)
        assert status.passed <= status.covered.any

    def test_one_failing_test_among_passing_ones_fails(self):
        snapshot = build_snapshot(["a"], covered={"a": TestOutcome.PASSED})
        extra = replace(snapshot.tests[0], name="test_a_again", outcome=TestOutcome.FAILED)
        link = replace(snapshot.coverage[0], test_name="test_a_again")
        snapshot = replace(
            snapshot, tests=snapshot.tests + (extra,), coverage=snapshot.coverage + (link,)
        )
        status = derive_status(snapshot)
        assert status.failed == {"a"}
        assert status.passed == frozenset()


class TestFullyPassed:
    """Tests for derive_all_children and fully_passed."""

    def test_all_children_membership(self):
        closure = tree(("a", "root"), ("b", "root"))
        assert derive_all_children(closure, frozenset({"a", "b"})) == {"a", "b", "root"}
        assert derive_all_children(closure, frozenset({"a"})) == {"a"}

    def test_fully_passed_needs_every_leaf_passing(self):
        snapshot = build_snapshot(
            ["root", "a", "b"],
            edges=[("a", "root"), ("b", "root")],
            covered={"a": TestOutcome.PASSED, "b": TestOutcome.PASSED},
        )
        status = derive_status(snapshot)
        assert status.fully_passed == {"root", "a", "b"}

    def test_fully_passed_excludes_failing_leaf(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        assert status.fully_passed == {"a"}


class TestAnnotationsAndValidity:
    """Tests for deprecated, manual, verified and invalid."""

    def test_deprecated_parent_invalidates_traced_child(self):
        snapshot = build_snapshot(
            [make_requirement("old", Annotation.DEPRECATED), "old.part", "fresh"],
            edges=[("old.part", "old")],
            traced=["old.part", "fresh"],
        )
        status = derive_status(snapshot)
        assert status.deprecated == {"old", "old.part"}
        # old is indirectly traced through its only child
        assert status.invalid == {"old", "old.part"}

    def test_deprecated_without_trace_is_valid(self):
        snapshot = build_snapshot([make_requirement("old", Annotation.DEPRECATED)])
        assert derive_status(snapshot).invalid == frozenset()

    def test_manual_and_verified(self):
        snapshot = build_snapshot(
            [make_requirement("ui", Annotation.MANUAL), "ui.layout", "api"],
            edges=[("ui.layout", "ui")],
            verified=["ui.layout"],
        )
        status = derive_status(snapshot)
        assert status.manual == {"ui", "ui.layout"}
        assert status.verified == {"ui.layout"}
        assert status.status_of("ui.layout").verified
        assert not status.status_of("api").manual


class TestStatusOf:
    """Tests for per-requirement flags."""

    def test_flags_mirror_sets(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        flags = status.status_of("a")
        assert flags.directly_traced and flags.traced and flags.fully_traced
        assert flags.directly_covered and flags.passed
        assert not flags.indirectly_traced
        assert not flags.failed

    def test_unknown_requirement_raises(self, root_ab_snapshot):
        status = derive_status(root_ab_snapshot)
        with pytest.raises(KeyError):
            status.status_of("ghost")

    def test_to_dict_has_every_flag(self, root_ab_snapshot):
        data = derive_status(root_ab_snapshot).status_of("root").to_dict()
        assert data["id"] == "root"
        assert data["traced"] is False
        assert set(data) >= {"fully_passed", "invalid", "verified"}


class TestEvidenceIndex:
    """Tests for drill-down evidence lists."""

    def test_indirect_traces_only_for_indirect_requirements(self):
        snapshot = build_snapshot(
            ["root", "a", "b"], edges=[("a", "root"), ("b", "root")], traced=["a", "b"]
        )
        status = derive_status(snapshot)
        index = EvidenceIndex.from_snapshot(snapshot)
        assert {t.req_id for t in index.indirect_traces("root", status)} == {"a", "b"}
        assert index.indirect_traces("a", status) == []
        assert [t.req_id for t in index.direct_traces("a")] == ["a"]

    def test_failed_coverage_lists_failing_links_below(self):
        snapshot = build_snapshot(
            ["root", "a", "b"],
            edges=[("a", "root"), ("b", "root")],
            covered={"a": TestOutcome.PASSED, "b": TestOutcome.FAILED},
        )
        status = derive_status(snapshot)
        index = EvidenceIndex.from_snapshot(snapshot)
        assert [c.req_id for c in index.failed_coverage("root", status)] == ["b"]
        assert index.failed_coverage("a", status) == []


class TestPendingDiagnostics:
    def test_one_warning_per_pending_test(self):
        snapshot = build_snapshot(
            ["a", "b"], covered={"a": TestOutcome.PENDING, "b": TestOutcome.PASSED}
        )
        diagnostics = pending_test_diagnostics(snapshot)
        assert [d.kind for d in diagnostics] == ["pending_test"]
        assert diagnostics[0].subject == "test_a"
        assert diagnostics[0].severity == "warning"
