"""Tests for report building and its JSON serialization."""

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from reqgraph.graph.closure import CyclicHierarchy
from reqgraph.report import build_report, unrelated_diagnostics
from reqgraph.store.models import Annotation, TestOutcome
from tests.helpers import build_snapshot, make_requirement, make_trace

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestBuildReport:
    def test_overview(self, root_ab_snapshot):
        report = build_report(root_ab_snapshot, now=NOW)
        overview = report.overview
        assert overview.req_count == 3
        assert overview.traced_count == 1
        assert overview.covered_count == 1
        assert overview.passed_count == 1
        assert overview.traced_ratio == pytest.approx(1 / 3)
        assert overview.verified_count is None
        assert report.creation_date == "2024-06-01T12:00:00+00:00"

    def test_requirement_info(self, root_ab_snapshot):
        report = build_report(root_ab_snapshot, now=NOW)
        assert [r.id for r in report.requirements] == ["a", "b", "root"]

        root = report.find_requirement("root")
        assert root.children == ["a", "b"]
        assert root.parents == []
        assert not root.trace.traced
        assert root.leaf_children.leaf_count == 2
        assert root.leaf_children.traced_leaf_count == 1
        assert root.leaf_children.traced_leaf_ratio == 0.5

        leaf = report.find_requirement("a")
        assert leaf.parents == ["root"]
        assert leaf.coverage.passed
        assert leaf.coverage.fully_passed
        assert len(leaf.coverage.direct) == 1
        assert report.find_requirement("ghost") is None

    def test_failure_reaches_parent(self):
        snapshot = build_snapshot(
            ["root", "a", "b"],
            edges=[("a", "root"), ("b", "root")],
            covered={"a": TestOutcome.PASSED, "b": TestOutcome.FAILED},
        )
        report = build_report(snapshot, now=NOW)
        root = report.find_requirement("root")
        assert root.coverage.covered
        assert root.coverage.fully_covered
        assert not root.coverage.passed
        assert [link.req_id for link in root.coverage.failed] == ["b"]
        assert report.overview.passed_count == 1

    def test_test_statistics(self, root_ab_snapshot):
        report = build_report(root_ab_snapshot, now=NOW)
        [run] = report.tests.runs
        assert run.overview.expected_count == 1
        assert run.overview.passed_count == 1
        assert [t.name for t in run.tests] == ["test_a"]
        assert [c.req_id for c in run.tests[0].covered_traces] == ["a"]
        assert report.tests.overall.ran_count == 1

    def test_deprecated_traced_requirement_is_invalid(self):
        old = make_requirement("old", Annotation.DEPRECATED)
        report = build_report(build_snapshot([old, "new"], traced=["old"]), now=NOW)
        assert not report.validation.is_valid
        assert report.validation.invalid_reqs == ["old"]
        assert not report.find_requirement("old").valid
        assert report.find_requirement("new").valid

    def test_manual_verification(self):
        ui = make_requirement("ui", Annotation.MANUAL)
        report = build_report(build_snapshot([ui], verified=["ui"]), now=NOW)
        assert report.overview.verified_count == 1
        assert report.overview.verified_ratio == 1.0
        assert report.find_requirement("ui").verified
        assert [v.req_id for v in report.reviews[0].requirements] == ["ui"]

    def test_cycle_raises(self):
        snapshot = build_snapshot(["a", "b"], edges=[("a", "b"), ("b", "a")])
        with pytest.raises(CyclicHierarchy):
            build_report(snapshot)


class TestUnrelated:
    def test_quarantined_facts_become_diagnostics(self):
        snapshot = replace(build_snapshot(["a"]), unrelated_traces=(make_trace("ghost"),))
        [diagnostic] = unrelated_diagnostics(snapshot)
        assert diagnostic.kind == "dangling_reference"
        assert diagnostic.subject == "ghost"

        report = build_report(snapshot, now=NOW)
        assert report.unrelated.count == 1
        assert any(d.subject == "ghost" for d in report.diagnostics)

    def test_pending_test_is_reported(self):
        snapshot = build_snapshot(["a"], covered={"a": TestOutcome.PENDING})
        report = build_report(snapshot, now=NOW)
        assert "pending_test" in {d.kind for d in report.diagnostics}
        assert not report.find_requirement("a").coverage.passed


class TestReportSerialization:
    def test_to_json_round_trips(self, root_ab_snapshot):
        data = json.loads(build_report(root_ab_snapshot, now=NOW).to_json())
        assert set(data) == {
            "version",
            "creation_date",
            "overview",
            "validation",
            "requirements",
            "tests",
            "reviews",
            "unrelated",
            "diagnostics",
        }
        assert data["validation"] == {"is_valid": True, "invalid_reqs": []}
        assert data["tests"]["run_count"] == 1
        assert "name" not in data["tests"]["overall"]

    def test_requirement_dict(self, root_ab_snapshot):
        data = build_report(root_ab_snapshot, now=NOW).to_dict()
        first = data["requirements"][0]
        assert first["id"] == "a"
        assert first["trace_info"]["traced"] is True
        assert first["trace_info"]["direct"] == [
            {"req_id": "a", "filepath": "src/covered.py", "line": 1}
        ]
        assert first["coverage_info"]["direct"][0]["test_run"]["name"] == "unit"
        assert first["verified"] is False
