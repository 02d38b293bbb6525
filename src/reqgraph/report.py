"""Report structures built from one fact snapshot.

The report is a tree of typed aggregates (ReportContext at the root) that
is serialized once through ``to_dict()``. Renderers (JSON, HTML) consume
the aggregates and never query the store themselves.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from reqgraph import __version__
from reqgraph.graph.metrics import (
    LeafChildOverview,
    RequirementsOverview,
    TestRunOverview,
    leaf_child_overview,
    requirements_overview,
    tests_overview,
)
from reqgraph.graph.status import (
    EvidenceIndex,
    RequirementStatusSet,
    derive_status,
    pending_test_diagnostics,
)
from reqgraph.store.facts import FactSnapshot
from reqgraph.store.models import CoverageLink, Diagnostic, ManualVerification, Trace
from reqgraph.store.reconcile import dangling_reference


def _trace_dict(trace: Trace) -> dict[str, Any]:
    data: dict[str, Any] = {
        "req_id": trace.req_id,
        "filepath": trace.filepath,
        "line": trace.line,
    }
    if trace.item_name:
        data["item_name"] = trace.item_name
    if trace.span_start is not None:
        data["line_span"] = {"start": trace.span_start, "end": trace.span_end}
    return data


def _coverage_dict(link: CoverageLink) -> dict[str, Any]:
    return {
        "req_id": link.req_id,
        "test_run": {"name": link.test_run_name, "date": link.test_run_date},
        "test_name": link.test_name,
        "filepath": link.filepath,
        "line": link.line,
    }


def _verification_dict(verification: ManualVerification) -> dict[str, Any]:
    return {
        "req_id": verification.req_id,
        "review_name": verification.review_name,
        "review_date": verification.review_date,
        "comment": verification.comment,
    }


@dataclass
class TraceInfo:
    """Trace evidence of one requirement."""

    traced: bool = False
    fully_traced: bool = False
    direct: list[Trace] = field(default_factory=list)
    indirect: list[Trace] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "traced": self.traced,
            "fully_traced": self.fully_traced,
            "direct": [_trace_dict(t) for t in self.direct],
            "indirect": [_trace_dict(t) for t in self.indirect],
        }


@dataclass
class CoverageInfo:
    """Coverage evidence of one requirement."""

    covered: bool = False
    fully_covered: bool = False
    passed: bool = False
    fully_passed: bool = False
    direct: list[CoverageLink] = field(default_factory=list)
    indirect: list[CoverageLink] = field(default_factory=list)
    failed: list[CoverageLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "covered": self.covered,
            "fully_covered": self.fully_covered,
            "passed": self.passed,
            "fully_passed": self.fully_passed,
            "direct": [_coverage_dict(c) for c in self.direct],
            "indirect": [_coverage_dict(c) for c in self.indirect],
            "failed": [_coverage_dict(c) for c in self.failed],
        }


@dataclass
class RequirementInfo:
    """Everything the report shows about one requirement."""

    id: str
    origin: str
    title: str
    annotation: str | None
    parents: list[str]
    children: list[str]
    deprecated: bool
    manual: bool
    trace: TraceInfo
    coverage: CoverageInfo
    leaf_children: LeafChildOverview
    verifications: list[ManualVerification]
    valid: bool

    @property
    def verified(self) -> bool:
        return bool(self.verifications)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "origin": self.origin,
            "title": self.title,
            "annotation": self.annotation,
            "parents": self.parents,
            "children": self.children,
            "deprecated": self.deprecated,
            "manual": self.manual,
            "trace_info": self.trace.to_dict(),
            "coverage_info": self.coverage.to_dict(),
            "leaf_children": self.leaf_children.to_dict(),
            "verified": self.verified,
            "verifications": [_verification_dict(v) for v in self.verifications],
            "valid": self.valid,
        }


@dataclass
class TestInfo:
    """One test record with the traces it reached."""

    __test__ = False

    name: str
    filepath: str
    line: int
    outcome: str
    skip_reason: str | None = None
    covered_traces: list[CoverageLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "filepath": self.filepath,
            "line": self.line,
            "outcome": self.outcome,
            "covered_traces": [
                {"req_id": c.req_id, "filepath": c.filepath, "line": c.line}
                for c in self.covered_traces
            ],
        }
        if self.skip_reason is not None:
            data["skip_reason"] = self.skip_reason
        return data


@dataclass
class TestRunInfo:
    """A test run with its statistics and tests."""

    __test__ = False

    overview: TestRunOverview
    logs: str | None = None
    meta: dict[str, Any] | None = None
    tests: list[TestInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.overview.to_dict(),
            "logs": self.logs,
            "meta": self.meta,
            "tests": [t.to_dict() for t in self.tests],
        }


@dataclass
class TestStatistics:
    """Per-run and overall test statistics."""

    __test__ = False

    overall: TestRunOverview = field(default_factory=TestRunOverview)
    runs: list[TestRunInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        overall = self.overall.to_dict()
        overall.pop("name")
        overall.pop("date")
        return {
            "run_count": len(self.runs),
            "overall": overall,
            "runs": [r.to_dict() for r in self.runs],
        }


@dataclass
class ReviewInfo:
    name: str
    date: str
    reviewer: str
    comment: str | None
    requirements: list[ManualVerification] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "date": self.date,
            "reviewer": self.reviewer,
            "comment": self.comment,
            "requirements": [
                {"id": v.req_id, "comment": v.comment} for v in self.requirements
            ],
        }


@dataclass
class UnrelatedInfo:
    """Quarantined facts still waiting for their referent."""

    traces: list[Trace] = field(default_factory=list)
    coverage: list[CoverageLink] = field(default_factory=list)
    verifications: list[ManualVerification] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.traces) + len(self.coverage) + len(self.verifications)

    def to_dict(self) -> dict[str, Any]:
        return {
            "traces": [_trace_dict(t) for t in self.traces],
            "coverage": [_coverage_dict(c) for c in self.coverage],
            "verifications": [_verification_dict(v) for v in self.verifications],
        }


@dataclass
class ValidationInfo:
    is_valid: bool = True
    invalid_reqs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "invalid_reqs": self.invalid_reqs}


@dataclass
class ReportContext:
    """Root of the report tree."""

    overview: RequirementsOverview
    requirements: list[RequirementInfo]
    tests: TestStatistics
    reviews: list[ReviewInfo]
    unrelated: UnrelatedInfo
    validation: ValidationInfo
    diagnostics: list[Diagnostic]
    creation_date: str
    version: str = __version__

    def find_requirement(self, req_id: str) -> RequirementInfo | None:
        for info in self.requirements:
            if info.id == req_id:
                return info
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "creation_date": self.creation_date,
            "overview": self.overview.to_dict(),
            "validation": self.validation.to_dict(),
            "requirements": [r.to_dict() for r in self.requirements],
            "tests": self.tests.to_dict(),
            "reviews": [r.to_dict() for r in self.reviews],
            "unrelated": self.unrelated.to_dict(),
            "diagnostics": [
                {
                    "kind": d.kind,
                    "severity": d.severity,
                    "subject": d.subject,
                    "message": d.message,
                }
                for d in self.diagnostics
            ],
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def unrelated_diagnostics(snapshot: FactSnapshot) -> list[Diagnostic]:
    """One dangling_reference warning per quarantined fact."""
    diagnostics = [
        dangling_reference(
            f"Trace {t} references unknown requirement '{t.req_id}'", t.req_id
        )
        for t in snapshot.unrelated_traces
    ]
    diagnostics.extend(
        dangling_reference(
            f"Coverage {c} references unknown trace {c.req_id}@{c.filepath}:{c.line}",
            c.req_id,
        )
        for c in snapshot.unrelated_coverage
    )
    diagnostics.extend(
        dangling_reference(
            f"Manual verification {v} references unknown requirement '{v.req_id}'",
            v.req_id,
        )
        for v in snapshot.unrelated_verifications
    )
    return diagnostics


def build_requirement_info(
    req_id: str,
    snapshot: FactSnapshot,
    status: RequirementStatusSet,
    evidence: EvidenceIndex,
    verifications: list[ManualVerification],
) -> RequirementInfo:
    req = snapshot.find_requirement(req_id)
    if req is None:
        raise KeyError(f"Unknown requirement '{req_id}'")
    closure = status.closure
    flags = status.status_of(req_id)
    return RequirementInfo(
        id=req.id,
        origin=req.origin,
        title=req.title,
        annotation=req.annotation.value if req.annotation else None,
        parents=sorted(closure.parents_of(req_id)),
        children=sorted(closure.children_of(req_id)),
        deprecated=flags.deprecated,
        manual=flags.manual,
        trace=TraceInfo(
            traced=flags.traced,
            fully_traced=flags.fully_traced,
            direct=evidence.direct_traces(req_id),
            indirect=evidence.indirect_traces(req_id, status),
        ),
        coverage=CoverageInfo(
            covered=flags.covered,
            fully_covered=flags.fully_covered,
            passed=flags.passed,
            fully_passed=flags.fully_passed,
            direct=evidence.direct_coverage(req_id),
            indirect=evidence.indirect_coverage(req_id, status),
            failed=evidence.failed_coverage(req_id, status),
        ),
        leaf_children=leaf_child_overview(req_id, closure, status),
        verifications=verifications,
        valid=not flags.invalid,
    )


def build_report(
    snapshot: FactSnapshot,
    status: RequirementStatusSet | None = None,
    now: datetime | None = None,
) -> ReportContext:
    """Derive everything the report shows from one snapshot.

    Raises:
        CyclicHierarchy: If the hierarchy has a cycle.
    """
    if status is None:
        status = derive_status(snapshot)
    evidence = EvidenceIndex.from_snapshot(snapshot)

    verifications_by_req: dict[str, list[ManualVerification]] = {}
    for verification in snapshot.verifications:
        verifications_by_req.setdefault(verification.req_id, []).append(verification)

    requirements = [
        build_requirement_info(
            req_id, snapshot, status, evidence, verifications_by_req.get(req_id, [])
        )
        for req_id in snapshot.requirement_ids
    ]

    overview_set = tests_overview(snapshot.test_runs, snapshot.tests)
    coverage_by_test: dict[tuple[str, str, str], list[CoverageLink]] = {}
    for link in snapshot.coverage:
        coverage_by_test.setdefault(link.test_key, []).append(link)
    runs_by_key = {run.key: run for run in snapshot.test_runs}
    run_infos: list[TestRunInfo] = []
    for run_overview in overview_set.runs:
        run = runs_by_key[(run_overview.name, run_overview.date)]
        run_infos.append(
            TestRunInfo(
                overview=run_overview,
                logs=run.logs,
                meta=run.meta,
                tests=[
                    TestInfo(
                        name=test.name,
                        filepath=test.filepath,
                        line=test.line,
                        outcome=test.outcome.value,
                        skip_reason=test.skip_reason,
                        covered_traces=coverage_by_test.get(test.key, []),
                    )
                    for test in snapshot.tests
                    if test.run_key == run.key
                ],
            )
        )

    reviews: list[ReviewInfo] = []
    for review in snapshot.reviews:
        reviews.append(
            ReviewInfo(
                name=review.name,
                date=review.date,
                reviewer=review.reviewer,
                comment=review.comment,
                requirements=[
                    v
                    for v in snapshot.verifications
                    if (v.review_name, v.review_date) == review.key
                ],
            )
        )

    diagnostics = [
        *unrelated_diagnostics(snapshot),
        *pending_test_diagnostics(snapshot),
        *overview_set.diagnostics,
    ]
    invalid = sorted(status.invalid)
    created = (now or datetime.now(timezone.utc)).isoformat()

    return ReportContext(
        overview=requirements_overview(snapshot, status),
        requirements=requirements,
        tests=TestStatistics(overall=overview_set.overall, runs=run_infos),
        reviews=reviews,
        unrelated=UnrelatedInfo(
            traces=list(snapshot.unrelated_traces),
            coverage=list(snapshot.unrelated_coverage),
            verifications=list(snapshot.unrelated_verifications),
        ),
        validation=ValidationInfo(is_valid=not invalid, invalid_reqs=invalid),
        diagnostics=diagnostics,
        creation_date=created,
    )


__all__ = [
    "CoverageInfo",
    "RequirementInfo",
    "ReportContext",
    "ReviewInfo",
    "TestInfo",
    "TestRunInfo",
    "TestStatistics",
    "TraceInfo",
    "UnrelatedInfo",
    "ValidationInfo",
    "build_report",
    "unrelated_diagnostics",
]
