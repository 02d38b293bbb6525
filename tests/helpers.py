"""Factories for building fact records, snapshots and stores in tests.

The graph tests work on in-memory FactSnapshot objects; the store and
command tests write the same records through a FactStore.
"""

from __future__ import annotations

import json
from pathlib import Path

from reqgraph.store.facts import FactSnapshot, FactStore
from reqgraph.store.models import (
    Annotation,
    CoverageLink,
    HierarchyEdge,
    ManualVerification,
    Requirement,
    Review,
    TestOutcome,
    TestRecord,
    TestRun,
    Trace,
)

RUN_DATE = "2024-05-01T10:00:00+00:00"


def make_requirement(
    req_id: str,
    annotation: Annotation | None = None,
    title: str = "",
    origin: str | None = None,
) -> Requirement:
    return Requirement(
        id=req_id,
        origin=origin if origin is not None else f"https://wiki.example/{req_id}",
        title=title or req_id,
        annotation=annotation,
    )


def make_trace(req_id: str, filepath: str = "src/app.py", line: int = 1) -> Trace:
    return Trace(req_id=req_id, filepath=filepath, line=line)


def make_run(name: str = "unit", date: str = RUN_DATE, expected: int = 1) -> TestRun:
    return TestRun(name=name, date=date, expected_test_count=expected)


def make_test(
    name: str,
    outcome: TestOutcome = TestOutcome.PASSED,
    run: TestRun | None = None,
    skip_reason: str | None = None,
) -> TestRecord:
    run = run or make_run()
    return TestRecord(
        test_run_name=run.name,
        test_run_date=run.date,
        name=name,
        filepath="tests/test_app.py",
        line=1,
        outcome=outcome,
        skip_reason=skip_reason,
    )


def make_coverage(trace: Trace, test: TestRecord) -> CoverageLink:
    return CoverageLink(
        req_id=trace.req_id,
        test_run_name=test.test_run_name,
        test_run_date=test.test_run_date,
        test_name=test.name,
        filepath=trace.filepath,
        line=trace.line,
    )


def build_snapshot(
    requirements: list[str | Requirement],
    edges: list[tuple[str, str]] = (),
    traced: list[str] = (),
    covered: dict[str, TestOutcome] | None = None,
    verified: list[str] = (),
) -> FactSnapshot:
    """Build a snapshot from compact descriptions.

    Args:
        requirements: Ids or Requirement objects.
        edges: (child_id, parent_id) pairs.
        traced: Requirements that get one direct trace each.
        covered: Requirement -> outcome of the single test covering it.
            Covered requirements are traced as well.
        verified: Requirements with a manual verification.
    """
    reqs = tuple(
        r if isinstance(r, Requirement) else make_requirement(r) for r in requirements
    )
    covered = covered or {}
    traces = {req_id: make_trace(req_id, line=n + 1) for n, req_id in enumerate(traced)}
    for n, req_id in enumerate(covered):
        traces.setdefault(req_id, make_trace(req_id, filepath="src/covered.py", line=n + 1))

    run = make_run(expected=len(covered))
    tests = []
    links = []
    for req_id, outcome in covered.items():
        test = make_test(f"test_{req_id}", outcome, run)
        tests.append(test)
        links.append(make_coverage(traces[req_id], test))

    review = Review(name="review", date=RUN_DATE, reviewer="qa")
    return FactSnapshot(
        requirements=reqs,
        hierarchy=tuple(HierarchyEdge(child_id=c, parent_id=p) for c, p in edges),
        traces=tuple(traces.values()),
        test_runs=(run,) if covered else (),
        tests=tuple(tests),
        coverage=tuple(links),
        reviews=(review,) if verified else (),
        verifications=tuple(
            ManualVerification(req_id=r, review_name=review.name, review_date=review.date)
            for r in verified
        ),
    )


def write_json(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def requirements_file(path: Path, *entries: dict) -> Path:
    return write_json(path, {"requirements": list(entries)})


def traces_file(path: Path, filepath: str, *entries: dict) -> Path:
    return write_json(path, {"files": [{"filepath": filepath, "traces": list(entries)}]})


def seed_store(store: FactStore, snapshot: FactSnapshot) -> FactStore:
    """Write the facts of a snapshot into a store, bypassing generations."""
    with store.transaction():
        for req in snapshot.requirements:
            store.upsert_requirement(req)
        for edge in snapshot.hierarchy:
            store.add_hierarchy_edge(edge)
        for trace in snapshot.traces:
            store.add_trace(trace)
        for run in snapshot.test_runs:
            store.add_test_run(run)
        for test in snapshot.tests:
            store.add_test(test)
        for link in snapshot.coverage:
            store.add_coverage(link)
        for review in snapshot.reviews:
            store.add_review(review)
        for verification in snapshot.verifications:
            store.add_verification(verification)
    return store
