"""Tests for annotation propagation."""

import pytest

from reqgraph.graph.annotators import effective_annotations, propagate_annotation
from reqgraph.graph.closure import closure_from_edges
from reqgraph.store.models import Annotation, HierarchyEdge
from tests.helpers import make_requirement


def _closure():
    pairs = [("a", "root"), ("b", "root"), ("a.1", "a"), ("a.2", "a")]
    return closure_from_edges(
        ["root", "a", "b", "a.1", "a.2"],
        [HierarchyEdge(child_id=c, parent_id=p) for c, p in pairs],
    )


class TestPropagateAnnotation:
    def test_seed_and_all_descendants(self):
        assert propagate_annotation(_closure(), ["a"]) == {"a", "a.1", "a.2"}

    def test_root_seed_covers_everything(self):
        closure = _closure()
        assert propagate_annotation(closure, ["root"]) == set(closure.ids)

    def test_never_reaches_ancestors_or_siblings(self):
        result = propagate_annotation(_closure(), ["a.1"])
        assert result == {"a.1"}

    def test_unknown_seed_ignored(self):
        assert propagate_annotation(_closure(), ["ghost"]) == frozenset()

    def test_order_independent(self):
        closure = _closure()
        assert propagate_annotation(closure, ["b", "a"]) == propagate_annotation(
            closure, ["a", "b", "a"]
        )


class TestEffectiveAnnotations:
    def test_deprecated_and_manual_are_separate(self):
        requirements = [
            make_requirement("root"),
            make_requirement("a", Annotation.DEPRECATED),
            make_requirement("b", Annotation.MANUAL),
            make_requirement("a.1"),
            make_requirement("a.2", Annotation.MANUAL),
        ]
        effective = effective_annotations(_closure(), requirements)
        assert effective.deprecated == {"a", "a.1", "a.2"}
        assert effective.manual == {"b", "a.2"}

    def test_of_reports_both(self):
        requirements = [
            make_requirement("root", Annotation.MANUAL),
            make_requirement("a", Annotation.DEPRECATED),
        ]
        effective = effective_annotations(_closure(), requirements)
        assert effective.of("a.1") == {Annotation.MANUAL, Annotation.DEPRECATED}
        assert effective.of("b") == {Annotation.MANUAL}

    def test_no_annotations(self):
        effective = effective_annotations(_closure(), [make_requirement("root")])
        assert effective.deprecated == frozenset()
        assert effective.manual == frozenset()


class TestAnnotationParse:
    def test_case_insensitive(self):
        assert Annotation.parse("Manual") is Annotation.MANUAL
        assert Annotation.parse(" deprecated ") is Annotation.DEPRECATED

    def test_empty_is_none(self):
        assert Annotation.parse(None) is None
        assert Annotation.parse("") is None

    def test_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown annotation"):
            Annotation.parse("obsolete")
