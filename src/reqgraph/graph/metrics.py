"""Aggregated statistics over derived status.

This module defines the overview structures used by reports:
- RequirementsOverview: global counts and ratios over all requirements
- LeafChildOverview: counts restricted to the leaf descendants of one requirement
- TestRunOverview / TestsOverview: per test run and overall test statistics

Ratios follow one convention: a zero denominator yields 0.0. The verified
count is None when no requirement is effectively manual, which separates
"nothing to verify" from "nothing verified".
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field

from reqgraph.graph.closure import HierarchyClosure
from reqgraph.graph.status import RequirementStatusSet
from reqgraph.store.facts import FactSnapshot
from reqgraph.store.models import Diagnostic, TestOutcome, TestRecord, TestRun


def ratio(count: int, total: int) -> float:
    """count / total, or 0.0 for an empty total."""
    if total <= 0:
        return 0.0
    return count / total


@dataclass(frozen=True)
class RequirementsOverview:
    """Global requirement statistics.

    Attributes:
        req_count: Number of requirements.
        traced_count: Requirements that are traced (directly or indirectly).
        covered_count: Requirements that are covered (directly or indirectly).
        passed_count: Covered requirements without failing coverage.
        verified_count: Effectively manual requirements with a manual
            verification, None when no requirement is effectively manual.
        verified_ratio: verified_count over the effectively manual count.
    """

    req_count: int = 0
    traced_count: int = 0
    traced_ratio: float = 0.0
    covered_count: int = 0
    covered_ratio: float = 0.0
    passed_count: int = 0
    passed_ratio: float = 0.0
    verified_count: int | None = None
    verified_ratio: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def requirements_overview(
    snapshot: FactSnapshot, status: RequirementStatusSet
) -> RequirementsOverview:
    ids = set(snapshot.requirement_ids)
    total = len(ids)
    traced = len(status.traced.any & ids)
    covered = len(status.covered.any & ids)
    passed = len(status.passed & ids)

    manual = status.manual & ids
    if manual:
        verified_count: int | None = len(status.verified & manual)
        verified_ratio = ratio(verified_count, len(manual))
    else:
        verified_count = None
        verified_ratio = 0.0

    return RequirementsOverview(
        req_count=total,
        traced_count=traced,
        traced_ratio=ratio(traced, total),
        covered_count=covered,
        covered_ratio=ratio(covered, total),
        passed_count=passed,
        passed_ratio=ratio(passed, total),
        verified_count=verified_count,
        verified_ratio=verified_ratio,
    )


@dataclass(frozen=True)
class LeafChildOverview:
    """Statistics over the leaf descendants of one requirement.

    Leaves are counted by their direct evidence only.
    """

    leaf_count: int = 0
    traced_leaf_count: int = 0
    traced_leaf_ratio: float = 0.0
    covered_leaf_count: int = 0
    covered_leaf_ratio: float = 0.0
    passed_covered_leaf_count: int = 0
    passed_covered_leaf_ratio: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def leaf_child_overview(
    req_id: str, closure: HierarchyClosure, status: RequirementStatusSet
) -> LeafChildOverview:
    """Roll up the leaves below req_id.

    Raises:
        KeyError: If the requirement is unknown.
    """
    leaves = closure.leaf_descendants_of(req_id)
    count = len(leaves)
    traced = len(leaves & status.traced.direct)
    covered = len(leaves & status.covered.direct)
    passed = len(leaves & status.covered.direct & status.passed)
    return LeafChildOverview(
        leaf_count=count,
        traced_leaf_count=traced,
        traced_leaf_ratio=ratio(traced, count),
        covered_leaf_count=covered,
        covered_leaf_ratio=ratio(covered, count),
        passed_covered_leaf_count=passed,
        passed_covered_leaf_ratio=ratio(passed, count),
    )


@dataclass(frozen=True)
class TestRunOverview:
    """Statistics of a single test run; ratios are over the expected count."""

    __test__ = False

    name: str = ""
    date: str = ""
    expected_count: int = 0
    ran_count: int = 0
    ran_ratio: float = 0.0
    passed_count: int = 0
    passed_ratio: float = 0.0
    failed_count: int = 0
    failed_ratio: float = 0.0
    skipped_count: int = 0
    skipped_ratio: float = 0.0

    @property
    def missing_count(self) -> int:
        """Expected tests that never reported in."""
        return max(0, self.expected_count - self.ran_count - self.skipped_count)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["missing_count"] = self.missing_count
        return data


def _overview_from_counts(
    name: str, date: str, expected: int, passed: int, failed: int, skipped: int
) -> TestRunOverview:
    ran = passed + failed
    return TestRunOverview(
        name=name,
        date=date,
        expected_count=expected,
        ran_count=ran,
        ran_ratio=ratio(ran, expected),
        passed_count=passed,
        passed_ratio=ratio(passed, expected),
        failed_count=failed,
        failed_ratio=ratio(failed, expected),
        skipped_count=skipped,
        skipped_ratio=ratio(skipped, expected),
    )


def test_run_overview(run: TestRun, records: Iterable[TestRecord]) -> TestRunOverview:
    """Summarize the records of one run.

    Records of other runs are ignored. Pending records ran but never
    finished, so they count as ran and failed.
    """
    passed = failed = skipped = 0
    for record in records:
        if record.run_key != run.key:
            continue
        if record.outcome is TestOutcome.PASSED:
            passed += 1
        elif record.outcome is TestOutcome.SKIPPED:
            skipped += 1
        else:
            failed += 1
    return _overview_from_counts(
        run.name, run.date, run.expected_test_count, passed, failed, skipped
    )


@dataclass(frozen=True)
class TestsOverview:
    """Statistics summed over all test runs."""

    __test__ = False

    overall: TestRunOverview = field(default_factory=TestRunOverview)
    runs: tuple[TestRunOverview, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def run_count(self) -> int:
        return len(self.runs)


def tests_overview(runs: Iterable[TestRun], records: Iterable[TestRecord]) -> TestsOverview:
    """Build per-run overviews plus their sum.

    A run with fewer reported records than expected yields a
    ``missing_tests`` warning.
    """
    by_run: dict[tuple[str, str], list[TestRecord]] = {}
    for record in records:
        by_run.setdefault(record.run_key, []).append(record)

    overviews: list[TestRunOverview] = []
    diagnostics: list[Diagnostic] = []
    for run in sorted(runs, key=lambda r: (r.date, r.name)):
        overview = test_run_overview(run, by_run.get(run.key, ()))
        overviews.append(overview)
        if overview.missing_count:
            diagnostics.append(
                Diagnostic(
                    kind="missing_tests",
                    message=(
                        f"Test run '{run.name}' [{run.date}] expected "
                        f"{overview.expected_count} tests but "
                        f"{overview.ran_count + overview.skipped_count} reported"
                    ),
                    subject=run.name,
                )
            )

    overall = _overview_from_counts(
        "",
        "",
        sum(o.expected_count for o in overviews),
        sum(o.passed_count for o in overviews),
        sum(o.failed_count for o in overviews),
        sum(o.skipped_count for o in overviews),
    )
    return TestsOverview(overall=overall, runs=tuple(overviews), diagnostics=tuple(diagnostics))


__all__ = [
    "LeafChildOverview",
    "RequirementsOverview",
    "TestRunOverview",
    "TestsOverview",
    "leaf_child_overview",
    "ratio",
    "requirements_overview",
    "test_run_overview",
    "tests_overview",
]
