"""Annotation propagation.

A requirement is effectively deprecated (or manual) when it, or any of its
ancestors, declares the annotation. These are pure functions over a
HierarchyClosure; the result does not depend on the order of the inputs.

Usage:
    from reqgraph.graph.annotators import effective_annotations

    effective = effective_annotations(closure, snapshot.requirements)
    if req_id in effective.deprecated:
        ...
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from reqgraph.graph.closure import HierarchyClosure
from reqgraph.store.models import Annotation, Requirement


@dataclass(frozen=True)
class EffectiveAnnotations:
    """Requirements carrying an annotation, inherited or self-declared."""

    deprecated: frozenset[str] = frozenset()
    manual: frozenset[str] = frozenset()

    def of(self, req_id: str) -> set[Annotation]:
        result = set()
        if req_id in self.deprecated:
            result.add(Annotation.DEPRECATED)
        if req_id in self.manual:
            result.add(Annotation.MANUAL)
        return result


def propagate_annotation(closure: HierarchyClosure, seeds: Iterable[str]) -> frozenset[str]:
    """Return the seeds together with all of their descendants.

    Seeds that are not part of the hierarchy are ignored.
    """
    arena = closure.arena
    members: set[int] = set()
    for seed in seeds:
        try:
            i = arena.index_of(seed)
        except KeyError:
            continue
        if i in members:
            continue
        members.add(i)
        members |= closure.descendants[i]
    return frozenset(arena.ids[i] for i in members)


def effective_annotations(
    closure: HierarchyClosure, requirements: Iterable[Requirement]
) -> EffectiveAnnotations:
    """Compute the effective deprecated and manual sets."""
    deprecated_seeds: list[str] = []
    manual_seeds: list[str] = []
    for req in requirements:
        if req.annotation is Annotation.DEPRECATED:
            deprecated_seeds.append(req.id)
        elif req.annotation is Annotation.MANUAL:
            manual_seeds.append(req.id)
    return EffectiveAnnotations(
        deprecated=propagate_annotation(closure, deprecated_seeds),
        manual=propagate_annotation(closure, manual_seeds),
    )


__all__ = ["EffectiveAnnotations", "effective_annotations", "propagate_annotation"]
