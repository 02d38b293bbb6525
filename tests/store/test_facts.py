"""Tests for the SQLite fact store."""

import dataclasses

import pytest

from reqgraph.store.facts import FactStore, resolve_db_path
from reqgraph.store.models import (
    Annotation,
    HierarchyEdge,
    ManualVerification,
    Review,
    TestOutcome,
    TestRun,
    Trace,
)
from tests.helpers import (
    build_snapshot,
    make_coverage,
    make_requirement,
    make_run,
    make_test,
    make_trace,
    seed_store,
)


class TestResolveDbPath:
    def test_memory(self):
        assert resolve_db_path(":memory:") == ":memory:"

    def test_sqlite_url_relative_to_base(self, tmp_path):
        assert resolve_db_path("sqlite://facts.db", tmp_path) == str(tmp_path / "facts.db")

    def test_triple_slash_url(self, tmp_path):
        assert resolve_db_path("sqlite:///facts.db", tmp_path) == str(tmp_path / "facts.db")

    def test_plain_absolute_path(self, tmp_path):
        target = tmp_path / "sub" / "facts.db"
        assert resolve_db_path(str(target), tmp_path / "elsewhere") == str(target)

    def test_query_string_dropped(self, tmp_path):
        assert resolve_db_path("sqlite://facts.db?mode=rw", tmp_path) == str(tmp_path / "facts.db")


class TestRequirements:
    def test_upsert_reports_new_rows(self, store):
        assert store.upsert_requirement(make_requirement("a")) is True
        assert store.upsert_requirement(make_requirement("a", title="Renamed")) is False
        assert store.get_requirement("a").title == "Renamed"

    def test_introduced_survives_reconfirmation(self, store):
        req = make_requirement("a")
        store.upsert_requirement(dataclasses.replace(req, generation=1))
        store.upsert_requirement(dataclasses.replace(req, generation=4))
        stored = store.get_requirement("a")
        assert stored.generation == 4
        assert stored.introduced == 1

    def test_annotation_round_trip(self, store):
        store.upsert_requirement(make_requirement("a", Annotation.DEPRECATED))
        assert store.get_requirement("a").annotation is Annotation.DEPRECATED

    def test_unknown_requirement(self, store):
        assert store.get_requirement("ghost") is None
        assert not store.requirement_exists("ghost")


class TestSnapshot:
    def test_snapshot_reflects_seeded_facts(self, store, root_ab_snapshot):
        seed_store(store, root_ab_snapshot)
        snap = store.snapshot()
        assert snap.requirement_ids == ["a", "b", "root"]
        assert {(e.child_id, e.parent_id) for e in snap.hierarchy} == {
            ("a", "root"),
            ("b", "root"),
        }
        assert [t.req_id for t in snap.traces] == ["a"]
        assert len(snap.coverage) == 1
        assert snap.tests[0].outcome is TestOutcome.PASSED
        assert not snap.has_unrelated()

    def test_snapshot_is_immutable(self, store):
        snap = store.snapshot()
        with pytest.raises(dataclasses.FrozenInstanceError):
            snap.requirements = ()

    def test_find_requirement(self, store):
        store.upsert_requirement(make_requirement("a"))
        snap = store.snapshot()
        assert snap.find_requirement("a").id == "a"
        assert snap.find_requirement("b") is None

    def test_trace_span_round_trip(self, store):
        store.upsert_requirement(make_requirement("a"))
        store.add_trace(Trace("a", "src/x.py", 10, item_name="f", span_start=11, span_end=20))
        trace = store.get_trace("a", "src/x.py", 10)
        assert trace.item_name == "f"
        assert (trace.span_start, trace.span_end) == (11, 20)

    def test_reconfirmed_trace_without_span_drops_old_span(self, store):
        store.upsert_requirement(make_requirement("a"))
        store.add_trace(Trace("a", "src/a.py", 3, generation=1, span_start=4, span_end=9))
        store.add_trace(Trace("a", "src/a.py", 3, generation=2))
        trace = store.get_trace("a", "src/a.py", 3)
        assert trace.generation == 2
        assert (trace.span_start, trace.span_end) == (None, None)

    def test_test_run_meta_round_trip(self, store):
        run = TestRun(
            name="unit",
            date="2024-05-01T10:00:00",
            expected_test_count=2,
            logs="ok",
            meta={"ci": "github", "attempt": 1},
        )
        store.add_test_run(run)
        stored = store.snapshot().test_runs[0]
        assert stored.meta == {"ci": "github", "attempt": 1}
        assert stored.logs == "ok"
        assert stored.expected_test_count == 2


class TestTransactions:
    def test_failed_batch_is_rolled_back(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.upsert_requirement(make_requirement("a"))
                raise RuntimeError("boom")
        assert not store.requirement_exists("a")

    def test_nested_transaction_joins_outer(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction():
                with store.transaction():
                    store.upsert_requirement(make_requirement("a"))
                raise RuntimeError("boom")
        assert not store.requirement_exists("a")

    def test_data_persists_on_disk(self, db_path):
        with FactStore(db_path) as first:
            first.upsert_requirement(make_requirement("a"))
        with FactStore(db_path) as second:
            assert second.requirement_exists("a")


class TestCascades:
    def test_deleting_requirement_cascades(self, store, root_ab_snapshot):
        seed_store(store, root_ab_snapshot)
        with store.transaction():
            store.delete_requirements(["a"])
        snap = store.snapshot()
        assert snap.requirement_ids == ["b", "root"]
        assert all(e.child_id != "a" for e in snap.hierarchy)
        assert snap.traces == ()
        assert snap.coverage == ()
        # history survives
        assert len(snap.test_runs) == 1
        assert len(snap.tests) == 1

    def test_upserting_test_run_keeps_its_tests(self, store, root_ab_snapshot):
        seed_store(store, root_ab_snapshot)
        store.add_test_run(root_ab_snapshot.test_runs[0])
        snap = store.snapshot()
        assert len(snap.tests) == 1
        assert len(snap.coverage) == 1

    def test_re_adding_review_keeps_verifications(self, store):
        snapshot = build_snapshot(["a"], verified=["a"])
        seed_store(store, snapshot)
        review = snapshot.reviews[0]
        store.add_review(Review(review.name, review.date, "someone else"))
        snap = store.snapshot()
        assert snap.reviews[0].reviewer == "someone else"
        assert len(snap.verifications) == 1


class TestQuarantine:
    def test_trace_of_unknown_requirement_is_quarantined(self, store):
        assert store.add_trace(make_trace("ghost")) is False
        snap = store.snapshot()
        assert snap.traces == ()
        assert [t.req_id for t in snap.unrelated_traces] == ["ghost"]
        assert snap.has_unrelated()

    def test_coverage_of_unknown_trace_is_quarantined(self, store):
        store.upsert_requirement(make_requirement("a"))
        run = make_run()
        test = make_test("t", run=run)
        store.add_test_run(run)
        store.add_test(test)
        assert store.add_coverage(make_coverage(make_trace("a"), test)) is False
        assert len(store.snapshot().unrelated_coverage) == 1

    def test_verification_of_unknown_requirement_is_quarantined(self, store):
        store.add_review(Review("r", "2024-01-01T00:00:00", "qa"))
        verification = ManualVerification("ghost", "r", "2024-01-01T00:00:00")
        assert store.add_verification(verification) is False
        assert store.snapshot().unrelated_verifications == (verification,)


class TestHistoryPruning:
    def test_unreferenced_runs_and_reviews_are_deleted(self, store, root_ab_snapshot):
        seed_store(store, root_ab_snapshot)
        store.add_test_run(make_run("orphan", expected=0))
        store.add_review(Review("lonely", "2024-01-01T00:00:00", "qa"))
        with store.transaction():
            removed = store.delete_unreferenced_history()
        assert removed == {"test_runs": 1, "reviews": 1}
        assert [r.name for r in store.snapshot().test_runs] == ["unit"]

    def test_clear_empties_every_table(self, store, root_ab_snapshot):
        seed_store(store, root_ab_snapshot)
        store.add_hierarchy_edge(HierarchyEdge("b", "a"))
        store.clear()
        assert all(count == 0 for count in store.counts().values())
