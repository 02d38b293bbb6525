"""Fact store adapter over SQLite.

The store is the only component that touches the database. Writers use
``transaction()`` (one ingestion batch = one transaction). Readers take a
``snapshot()``: every table is read inside a single read transaction and
returned as an immutable ``FactSnapshot`` so that derived relations are
never computed from a torn view.

Quarantine handling lives here as well: ``add_trace``, ``add_coverage`` and
``add_verification`` divert facts whose referent does not exist yet into
the corresponding Unrelated* table instead of rejecting them.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

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
from reqgraph.store.schema import ALL_TABLES, SCHEMA_VERSION, iter_statements

MEMORY_URL = ":memory:"


@dataclass(frozen=True)
class FactSnapshot:
    """Consistent, immutable copy of all fact tables.

    Attributes mirror the persisted relations. Unrelated* attributes hold the
    quarantined facts.
    """

    requirements: tuple[Requirement, ...] = ()
    hierarchy: tuple[HierarchyEdge, ...] = ()
    traces: tuple[Trace, ...] = ()
    test_runs: tuple[TestRun, ...] = ()
    tests: tuple[TestRecord, ...] = ()
    coverage: tuple[CoverageLink, ...] = ()
    reviews: tuple[Review, ...] = ()
    verifications: tuple[ManualVerification, ...] = ()
    unrelated_traces: tuple[Trace, ...] = ()
    unrelated_coverage: tuple[CoverageLink, ...] = ()
    unrelated_verifications: tuple[ManualVerification, ...] = ()
    _requirement_index: dict[str, Requirement] = field(
        default_factory=dict, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        # frozen: populate the lookup index through object.__setattr__
        object.__setattr__(
            self, "_requirement_index", {r.id: r for r in self.requirements}
        )

    @property
    def requirement_ids(self) -> list[str]:
        """Requirement ids in sorted order."""
        return sorted(self._requirement_index)

    def find_requirement(self, req_id: str) -> Requirement | None:
        return self._requirement_index.get(req_id)

    def has_unrelated(self) -> bool:
        return bool(
            self.unrelated_traces or self.unrelated_coverage or self.unrelated_verifications
        )


def resolve_db_path(url: str, base_dir: Path | None = None) -> str:
    """Turn a configured database url into a sqlite3 connect target.

    Accepts plain paths, ``sqlite:///path`` / ``sqlite://path`` urls and
    ``:memory:``. Relative paths are resolved against base_dir.

    Args:
        url: Configured database location.
        base_dir: Directory relative paths are anchored at.

    Returns:
        A string usable with sqlite3.connect().
    """
    if url == MEMORY_URL:
        return url
    path = url
    for prefix in ("sqlite:///", "sqlite://"):
        if path.startswith(prefix):
            path = path[len(prefix) :]
            break
    path = path.split("?", 1)[0]
    p = Path(path)
    if not p.is_absolute() and base_dir is not None:
        p = base_dir / p
    return str(p)


class FactStore:
    """Read/write interface to the fact tables.

    Args:
        db_path: sqlite3 connect target (file path or ":memory:").
    """

    def __init__(self, db_path: str | Path = MEMORY_URL) -> None:
        self._db_path = str(db_path)
        # autocommit mode; transactions are managed explicitly
        self._conn = sqlite3.connect(self._db_path, isolation_level=None)
        self._conn.execute("pragma foreign_keys = on")
        self._in_transaction = False
        self._create_schema()

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> FactStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _create_schema(self) -> None:
        """Create all tables if they don't exist."""
        with self.transaction():
            for stmt in iter_statements():
                self._conn.execute(stmt)
            self._conn.execute(
                "insert or ignore into SchemaInfo (key, value) values ('version', ?)",
                (str(SCHEMA_VERSION),),
            )

    # ─────────────────────────────────────────────────────────────────────────
    # Transactions
    # ─────────────────────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a write batch atomically.

        Nested use joins the outer transaction. On any exception the whole
        batch is rolled back and the exception propagates.
        """
        if self._in_transaction:
            yield self._conn
            return
        self._conn.execute("begin immediate")
        self._in_transaction = True
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("rollback")
            raise
        else:
            self._conn.execute("commit")
        finally:
            self._in_transaction = False

    def snapshot(self) -> FactSnapshot:
        """Read every fact table inside one read transaction."""
        own_transaction = not self._in_transaction
        if own_transaction:
            self._conn.execute("begin")
        try:
            snap = FactSnapshot(
                requirements=tuple(self._iter_requirements()),
                hierarchy=tuple(self._iter_hierarchy()),
                traces=tuple(self._iter_traces("Traces")),
                test_runs=tuple(self._iter_test_runs()),
                tests=tuple(self._iter_tests()),
                coverage=tuple(self._iter_coverage("TestCoverage")),
                reviews=tuple(self._iter_reviews()),
                verifications=tuple(self._iter_verifications("ManuallyVerified")),
                unrelated_traces=tuple(self._iter_traces("UnrelatedTraces")),
                unrelated_coverage=tuple(self._iter_coverage("UnrelatedTestCoverage")),
                unrelated_verifications=tuple(
                    self._iter_verifications("UnrelatedManuallyVerified")
                ),
            )
        finally:
            if own_transaction:
                self._conn.execute("commit")
        return snap

    # ─────────────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────────────

    def requirement_exists(self, req_id: str) -> bool:
        row = self._conn.execute("select 1 from Requirements where id = ?", (req_id,)).fetchone()
        return row is not None

    def get_requirement(self, req_id: str) -> Requirement | None:
        row = self._conn.execute(
            "select id, origin, title, annotation, generation, introduced "
            "from Requirements where id = ?",
            (req_id,),
        ).fetchone()
        return _requirement_from_row(row) if row else None

    def trace_exists(self, req_id: str, filepath: str, line: int) -> bool:
        row = self._conn.execute(
            "select 1 from Traces where req_id = ? and filepath = ? and line = ?",
            (req_id, filepath, line),
        ).fetchone()
        return row is not None

    def get_trace(self, req_id: str, filepath: str, line: int) -> Trace | None:
        for trace in self._iter_traces(
            "Traces", where="t.req_id = ? and t.filepath = ? and t.line = ?",
            params=(req_id, filepath, line),
        ):
            return trace
        return None

    def test_exists(self, run_name: str, run_date: str, test_name: str) -> bool:
        row = self._conn.execute(
            "select 1 from Tests where test_run_name = ? and test_run_date = ? and name = ?",
            (run_name, run_date, test_name),
        ).fetchone()
        return row is not None

    def review_exists(self, name: str, date: str) -> bool:
        row = self._conn.execute(
            "select 1 from Reviews where name = ? and date = ?", (name, date)
        ).fetchone()
        return row is not None

    def max_generation(self) -> int:
        """Highest generation handed out or stamped on any row (0 if empty)."""
        row = self._conn.execute(
            "select max(g) from ("
            " select max(generation) as g from IngestionBatches"
            " union all select max(generation) from Requirements"
            " union all select max(generation) from Traces"
            " union all select max(generation) from UnrelatedTraces)"
        ).fetchone()
        return int(row[0]) if row and row[0] is not None else 0

    def record_batch(self, generation: int, scope: str, started: str) -> None:
        self._conn.execute(
            "insert into IngestionBatches (generation, scope, started) values (?, ?, ?)",
            (generation, scope, started),
        )

    def batch_scope(self, generation: int) -> str | None:
        row = self._conn.execute(
            "select scope from IngestionBatches where generation = ?", (generation,)
        ).fetchone()
        return row[0] if row else None

    def latest_batch(self, scope: str | None = None) -> int | None:
        """Generation of the newest batch, optionally restricted to one scope."""
        if scope is None:
            row = self._conn.execute("select max(generation) from IngestionBatches").fetchone()
        else:
            row = self._conn.execute(
                "select max(generation) from IngestionBatches where scope = ?", (scope,)
            ).fetchone()
        return row[0] if row and row[0] is not None else None

    def requirement_stamps(self) -> list[tuple[str, int, int]]:
        """(id, generation, introduced) of every requirement."""
        return list(
            self._conn.execute(
                "select id, generation, introduced from Requirements order by id"
            )
        )

    def trace_stamps(self) -> list[tuple[str, str, int, int, int]]:
        """(req_id, filepath, line, generation, introduced) of every trace."""
        return list(
            self._conn.execute(
                "select req_id, filepath, line, generation, introduced from Traces "
                "order by req_id, filepath, line"
            )
        )

    def unrelated_trace_stamps(self) -> list[tuple[str, str, int, int]]:
        """(req_id, filepath, line, generation) of every quarantined trace."""
        return list(
            self._conn.execute(
                "select req_id, filepath, line, generation from UnrelatedTraces "
                "order by req_id, filepath, line"
            )
        )

    def stored_generation(self, table: str, where: str, params: tuple) -> int | None:
        row = self._conn.execute(
            f'select generation from "{table}" where {where}', params
        ).fetchone()
        return row[0] if row else None

    def counts(self) -> dict[str, int]:
        """Row count per table, for diagnostics."""
        return {
            table: self._conn.execute(f'select count(*) from "{table}"').fetchone()[0]
            for table in ALL_TABLES
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────────

    def upsert_requirement(self, req: Requirement) -> bool:
        """Insert or re-confirm a requirement.

        Returns:
            True when the requirement was newly inserted.
        """
        annotation = req.annotation.value if req.annotation else None
        with self.transaction():
            existing = self._conn.execute(
                "select 1 from Requirements where id = ?", (req.id,)
            ).fetchone()
            if existing:
                self._conn.execute(
                    "update Requirements set generation = ?, origin = ?, title = ?, "
                    "annotation = ? where id = ?",
                    (req.generation, req.origin, req.title, annotation, req.id),
                )
                return False
            self._conn.execute(
                "insert into Requirements (id, generation, introduced, origin, title, annotation) "
                "values (?, ?, ?, ?, ?, ?)",
                (req.id, req.generation, req.generation, req.origin, req.title, annotation),
            )
            return True

    def add_hierarchy_edge(self, edge: HierarchyEdge) -> None:
        self._conn.execute(
            "insert or ignore into RequirementHierarchies (child_id, parent_id) values (?, ?)",
            (edge.child_id, edge.parent_id),
        )

    def remove_parent_edges(self, child_id: str) -> None:
        """Drop all parent edges of a requirement before re-declaring them."""
        self._conn.execute("delete from RequirementHierarchies where child_id = ?", (child_id,))

    def add_trace(self, trace: Trace) -> bool:
        """Insert or re-confirm a trace, quarantining it if its requirement is unknown.

        Returns:
            True when the trace entered the primary relation, False when it
            was quarantined.
        """
        with self.transaction():
            if not self.requirement_exists(trace.req_id):
                self._conn.execute(
                    "insert or replace into UnrelatedTraces "
                    "(req_id, generation, filepath, line, item_name, span_start, span_end) "
                    "values (?, ?, ?, ?, ?, ?, ?)",
                    (
                        trace.req_id,
                        trace.generation,
                        trace.filepath,
                        trace.line,
                        trace.item_name,
                        trace.span_start,
                        trace.span_end,
                    ),
                )
                return False
            self.insert_trace(trace)
            return True

    def insert_trace(self, trace: Trace) -> None:
        """Write a trace into the primary relation without the requirement check."""
        self._conn.execute(
            "insert into Traces (req_id, generation, introduced, filepath, line, item_name) "
            "values (?, ?, ?, ?, ?, ?) "
            "on conflict (req_id, filepath, line) do update set "
            "generation = excluded.generation, item_name = excluded.item_name",
            (
                trace.req_id,
                trace.generation,
                trace.generation,
                trace.filepath,
                trace.line,
                trace.item_name,
            ),
        )
        if trace.span_start is not None and trace.span_end is not None:
            self._conn.execute(
                "insert or replace into TraceSpans "
                "(req_id, filepath, line, span_start, span_end) values (?, ?, ?, ?, ?)",
                (trace.req_id, trace.filepath, trace.line, trace.span_start, trace.span_end),
            )
        else:
            # the span belongs to the latest confirmation only
            self._conn.execute(
                "delete from TraceSpans where req_id = ? and filepath = ? and line = ?",
                trace.key,
            )

    def add_test_run(self, run: TestRun) -> None:
        meta = json.dumps(run.meta) if run.meta is not None else None
        self._conn.execute(
            "insert into TestRuns (name, date, nr_of_tests, meta, logs) "
            "values (?, ?, ?, ?, ?) "
            "on conflict (name, date) do update set nr_of_tests = excluded.nr_of_tests, "
            "meta = excluded.meta, logs = excluded.logs",
            (run.name, run.date, run.expected_test_count, meta, run.logs),
        )

    def add_test(self, test: TestRecord) -> None:
        self._conn.execute(
            "insert into Tests "
            "(test_run_name, test_run_date, name, filepath, line, outcome, skip_reason) "
            "values (?, ?, ?, ?, ?, ?, ?) "
            "on conflict (test_run_name, test_run_date, name) do update set "
            "filepath = excluded.filepath, line = excluded.line, "
            "outcome = excluded.outcome, skip_reason = excluded.skip_reason",
            (
                test.test_run_name,
                test.test_run_date,
                test.name,
                test.filepath,
                test.line,
                test.outcome.value,
                test.skip_reason,
            ),
        )

    def add_coverage(self, link: CoverageLink) -> bool:
        """Insert a coverage link, quarantining it if its trace is unknown.

        Returns:
            True when the link entered the primary relation.
        """
        params = (
            link.req_id,
            link.test_run_name,
            link.test_run_date,
            link.test_name,
            link.filepath,
            link.line,
        )
        with self.transaction():
            if not self.trace_exists(link.req_id, link.filepath, link.line):
                self._conn.execute(
                    "insert or ignore into UnrelatedTestCoverage "
                    "(req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line) "
                    "values (?, ?, ?, ?, ?, ?)",
                    params,
                )
                return False
            self._conn.execute(
                "insert or ignore into TestCoverage "
                "(req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line) "
                "values (?, ?, ?, ?, ?, ?)",
                params,
            )
            return True

    def add_review(self, review: Review) -> None:
        self._conn.execute(
            "insert into Reviews (name, date, reviewer, comment) values (?, ?, ?, ?) "
            "on conflict (name, date) do update set "
            "reviewer = excluded.reviewer, comment = excluded.comment",
            (review.name, review.date, review.reviewer, review.comment),
        )

    def add_verification(self, verification: ManualVerification) -> bool:
        """Insert a manual verification, quarantining it if its requirement is unknown.

        Returns:
            True when the verification entered the primary relation.
        """
        params = (
            verification.req_id,
            verification.review_name,
            verification.review_date,
            verification.comment,
        )
        with self.transaction():
            if not self.requirement_exists(verification.req_id):
                self._conn.execute(
                    "insert or replace into UnrelatedManuallyVerified "
                    "(req_id, review_name, review_date, comment) values (?, ?, ?, ?)",
                    params,
                )
                return False
            self._conn.execute(
                "insert or replace into ManuallyVerified "
                "(req_id, review_name, review_date, comment) values (?, ?, ?, ?)",
                params,
            )
            return True

    # Deletions used by reconciliation -------------------------------------

    def delete_requirements(self, req_ids: Iterable[str]) -> int:
        deleted = 0
        for req_id in req_ids:
            cur = self._conn.execute("delete from Requirements where id = ?", (req_id,))
            deleted += cur.rowcount
        return deleted

    def delete_traces(self, keys: Iterable[tuple[str, str, int]]) -> int:
        deleted = 0
        for req_id, filepath, line in keys:
            cur = self._conn.execute(
                "delete from Traces where req_id = ? and filepath = ? and line = ?",
                (req_id, filepath, line),
            )
            deleted += cur.rowcount
        return deleted

    def delete_unrelated_trace(self, trace: Trace) -> None:
        self._conn.execute(
            "delete from UnrelatedTraces where req_id = ? and filepath = ? and line = ?",
            trace.key,
        )

    def delete_unrelated_coverage(self, link: CoverageLink) -> None:
        self._conn.execute(
            "delete from UnrelatedTestCoverage where req_id = ? and test_run_name = ? "
            "and test_run_date = ? and test_name = ? and trace_filepath = ? and trace_line = ?",
            (
                link.req_id,
                link.test_run_name,
                link.test_run_date,
                link.test_name,
                link.filepath,
                link.line,
            ),
        )

    def delete_unrelated_verification(self, verification: ManualVerification) -> None:
        self._conn.execute(
            "delete from UnrelatedManuallyVerified "
            "where req_id = ? and review_name = ? and review_date = ?",
            (verification.req_id, verification.review_name, verification.review_date),
        )

    def delete_unreferenced_history(self) -> dict[str, int]:
        """Delete test runs without coverage and reviews without verifications."""
        runs = self._conn.execute(
            "delete from TestRuns where not exists ("
            " select 1 from TestCoverage c where c.test_run_name = TestRuns.name"
            " and c.test_run_date = TestRuns.date)"
            " and not exists ("
            " select 1 from UnrelatedTestCoverage u where u.test_run_name = TestRuns.name"
            " and u.test_run_date = TestRuns.date)"
        ).rowcount
        reviews = self._conn.execute(
            "delete from Reviews where not exists ("
            " select 1 from ManuallyVerified m where m.review_name = Reviews.name"
            " and m.review_date = Reviews.date)"
            " and not exists ("
            " select 1 from UnrelatedManuallyVerified u where u.review_name = Reviews.name"
            " and u.review_date = Reviews.date)"
        ).rowcount
        return {"test_runs": runs, "reviews": reviews}

    def clear(self) -> None:
        """Delete every fact."""
        with self.transaction():
            for table in ALL_TABLES:
                self._conn.execute(f'delete from "{table}"')

    # ─────────────────────────────────────────────────────────────────────────
    # Row readers
    # ─────────────────────────────────────────────────────────────────────────

    def _iter_requirements(self) -> Iterator[Requirement]:
        rows = self._conn.execute(
            "select id, origin, title, annotation, generation, introduced "
            "from Requirements order by id"
        )
        for row in rows:
            yield _requirement_from_row(row)

    def _iter_hierarchy(self) -> Iterator[HierarchyEdge]:
        rows = self._conn.execute(
            "select child_id, parent_id from RequirementHierarchies order by parent_id, child_id"
        )
        for child_id, parent_id in rows:
            yield HierarchyEdge(child_id=child_id, parent_id=parent_id)

    def _iter_traces(
        self, table: str, where: str | None = None, params: tuple = ()
    ) -> Iterator[Trace]:
        if table == "Traces":
            sql = (
                "select t.req_id, t.filepath, t.line, t.generation, t.item_name, "
                "s.span_start, s.span_end from Traces t left join TraceSpans s "
                "on s.req_id = t.req_id and s.filepath = t.filepath and s.line = t.line"
            )
        else:
            sql = (
                "select t.req_id, t.filepath, t.line, t.generation, t.item_name, "
                "t.span_start, t.span_end from UnrelatedTraces t"
            )
        if where:
            sql += f" where {where}"
        sql += " order by t.req_id, t.filepath, t.line"
        for req_id, filepath, line, generation, item_name, start, end in self._conn.execute(
            sql, params
        ):
            yield Trace(
                req_id=req_id,
                filepath=filepath,
                line=line,
                generation=generation,
                item_name=item_name,
                span_start=start,
                span_end=end,
            )

    def _iter_test_runs(self) -> Iterator[TestRun]:
        rows = self._conn.execute(
            "select name, date, nr_of_tests, logs, meta from TestRuns order by name, date"
        )
        for name, date, nr_of_tests, logs, meta in rows:
            yield TestRun(
                name=name,
                date=date,
                expected_test_count=nr_of_tests,
                logs=logs,
                meta=json.loads(meta) if meta else None,
            )

    def _iter_tests(self) -> Iterator[TestRecord]:
        rows = self._conn.execute(
            "select test_run_name, test_run_date, name, filepath, line, outcome, skip_reason "
            "from Tests order by test_run_name, test_run_date, name"
        )
        for run_name, run_date, name, filepath, line, outcome, reason in rows:
            yield TestRecord(
                test_run_name=run_name,
                test_run_date=run_date,
                name=name,
                filepath=filepath,
                line=line,
                outcome=TestOutcome(outcome),
                skip_reason=reason,
            )

    def _iter_coverage(self, table: str) -> Iterator[CoverageLink]:
        rows = self._conn.execute(
            "select req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line "
            f'from "{table}" '
            "order by req_id, test_run_name, test_run_date, test_name, trace_filepath, trace_line"
        )
        for req_id, run_name, run_date, test_name, filepath, line in rows:
            yield CoverageLink(
                req_id=req_id,
                test_run_name=run_name,
                test_run_date=run_date,
                test_name=test_name,
                filepath=filepath,
                line=line,
            )

    def _iter_reviews(self) -> Iterator[Review]:
        rows = self._conn.execute(
            "select name, date, reviewer, comment from Reviews order by name, date"
        )
        for name, date, reviewer, comment in rows:
            yield Review(name=name, date=date, reviewer=reviewer, comment=comment)

    def _iter_verifications(self, table: str) -> Iterator[ManualVerification]:
        rows = self._conn.execute(
            f'select req_id, review_name, review_date, comment from "{table}" '
            "order by req_id, review_name, review_date"
        )
        for req_id, review_name, review_date, comment in rows:
            yield ManualVerification(
                req_id=req_id,
                review_name=review_name,
                review_date=review_date,
                comment=comment,
            )


def _requirement_from_row(row: tuple) -> Requirement:
    req_id, origin, title, annotation, generation, introduced = row
    return Requirement(
        id=req_id,
        origin=origin,
        title=title,
        annotation=Annotation(annotation) if annotation else None,
        generation=generation,
        introduced=introduced,
    )


__all__ = ["FactSnapshot", "FactStore", "MEMORY_URL", "resolve_db_path"]
