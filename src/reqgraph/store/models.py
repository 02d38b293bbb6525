"""Fact records persisted in the fact store.

This module defines the closed vocabularies and row types shared by the
store, the graph engine and the report layer:
- Annotation: self-declared requirement marker (manual / deprecated)
- TestOutcome: final state of a test record
- Requirement, HierarchyEdge, Trace: generation-stamped structural facts
- TestRun, TestRecord, CoverageLink: test execution history
- Review, ManualVerification: manual verification history
- Diagnostic: per-record anomaly surfaced to operators
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Annotation(Enum):
    """Self-declared requirement marker.

    Markers are inherited by all descendants of the marked requirement
    (see reqgraph.graph.annotators), but the stored value is only the
    requirement's own declaration.
    """

    MANUAL = "manual"
    DEPRECATED = "deprecated"

    @classmethod
    def parse(cls, value: str | None) -> Annotation | None:
        """Parse a producer annotation string.

        Args:
            value: "manual", "deprecated" (case-insensitive) or None.

        Returns:
            The matching Annotation, or None when no annotation is given.

        Raises:
            ValueError: If the value is not a known annotation.
        """
        if value is None or value == "":
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown annotation '{value}'. Must be one of: "
                f"{', '.join(a.value for a in cls)}"
            ) from None


class TestOutcome(Enum):
    """Final state of a test record.

    PENDING means the test run started the test but the record was never
    finalized. Only PASSED counts as success for failure propagation.
    """

    __test__ = False  # not a pytest collection target

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"

    @property
    def is_failing(self) -> bool:
        """True for every outcome other than PASSED."""
        return self is not TestOutcome.PASSED


@dataclass(frozen=True)
class Requirement:
    """A requirement known to the fact store.

    Attributes:
        id: Unique requirement identifier.
        origin: Provenance URI (wiki link, file path, ticket URL).
        title: Human-readable title.
        annotation: Self-declared marker, not inherited.
        generation: Last ingestion batch that confirmed the requirement.
        introduced: Ingestion batch that first inserted the requirement.
    """

    id: str
    origin: str
    title: str = ""
    annotation: Annotation | None = None
    generation: int = 0
    introduced: int = 0


@dataclass(frozen=True)
class HierarchyEdge:
    """Parent/child relation between two requirements."""

    child_id: str
    parent_id: str


@dataclass(frozen=True)
class Trace:
    """A located reference to a requirement in code or documentation.

    Attributes:
        req_id: Referenced requirement.
        filepath: File containing the reference, relative to the project root.
        line: 1-based line of the reference.
        generation: Last ingestion batch that confirmed the trace.
        item_name: Optional name of the annotated item (function, section).
        span_start: First line affected by the trace, if known.
        span_end: Last line affected by the trace, if known.
    """

    req_id: str
    filepath: str
    line: int
    generation: int = 0
    item_name: str | None = None
    span_start: int | None = None
    span_end: int | None = None

    @property
    def key(self) -> tuple[str, str, int]:
        """Primary key of the trace."""
        return (self.req_id, self.filepath, self.line)

    def __str__(self) -> str:
        return f"{self.req_id}@{self.filepath}:{self.line}"


@dataclass(frozen=True)
class TestRun:
    """One execution of a test suite."""

    __test__ = False

    name: str
    date: str  # ISO-8601
    expected_test_count: int
    logs: str | None = None
    meta: dict[str, Any] | None = field(default=None, hash=False, compare=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.date)


@dataclass(frozen=True)
class TestRecord:
    """Result of a single test inside a test run."""

    __test__ = False

    test_run_name: str
    test_run_date: str
    name: str
    filepath: str
    line: int
    outcome: TestOutcome = TestOutcome.PENDING
    skip_reason: str | None = None

    @property
    def run_key(self) -> tuple[str, str]:
        return (self.test_run_name, self.test_run_date)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.test_run_name, self.test_run_date, self.name)


@dataclass(frozen=True)
class CoverageLink:
    """Evidence that a test reached a traced location.

    The (req_id, filepath, line) triple references a Trace, the
    (test_run_name, test_run_date, test_name) triple a TestRecord.
    """

    req_id: str
    test_run_name: str
    test_run_date: str
    test_name: str
    filepath: str
    line: int

    @property
    def trace_key(self) -> tuple[str, str, int]:
        return (self.req_id, self.filepath, self.line)

    @property
    def test_key(self) -> tuple[str, str, str]:
        return (self.test_run_name, self.test_run_date, self.test_name)

    def __str__(self) -> str:
        return (
            f"{self.req_id}@{self.filepath}:{self.line} "
            f"by {self.test_run_name}[{self.test_run_date}]::{self.test_name}"
        )


@dataclass(frozen=True)
class Review:
    """A manual review session."""

    name: str
    date: str
    reviewer: str
    comment: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.date)


@dataclass(frozen=True)
class ManualVerification:
    """A requirement verified during a review."""

    req_id: str
    review_name: str
    review_date: str
    comment: str | None = None

    def __str__(self) -> str:
        return f"{self.req_id} in review {self.review_name}[{self.review_date}]"


@dataclass(frozen=True)
class Diagnostic:
    """A per-record anomaly that does not abort derivation.

    Attributes:
        kind: Machine-readable category ("dangling_reference",
            "pending_test", "missing_tests", ...).
        message: Human-readable description naming the offending ids.
        subject: Identifier of the record the diagnostic is about.
        severity: "warning" or "info".
    """

    kind: str
    message: str
    subject: str = ""
    severity: str = "warning"

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


__all__ = [
    "Annotation",
    "TestOutcome",
    "Requirement",
    "HierarchyEdge",
    "Trace",
    "TestRun",
    "TestRecord",
    "CoverageLink",
    "Review",
    "ManualVerification",
    "Diagnostic",
]
