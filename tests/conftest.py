"""Shared pytest fixtures."""

import pytest


@pytest.fixture
def store():
    """Fresh in-memory fact store."""
    from reqgraph.store.facts import FactStore

    fact_store = FactStore(":memory:")
    yield fact_store
    fact_store.close()


@pytest.fixture
def db_path(tmp_path):
    """Location of an on-disk fact store for command tests."""
    return tmp_path / "facts.db"


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep REQGRAPH_* variables and stray config files out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith("REQGRAPH_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def root_ab_snapshot():
    """root -> {a, b}; a traced and covered by a passing test, b untouched."""
    from reqgraph.store.models import TestOutcome
    from tests.helpers import build_snapshot

    return build_snapshot(
        ["root", "a", "b"],
        edges=[("a", "root"), ("b", "root")],
        covered={"a": TestOutcome.PASSED},
    )
