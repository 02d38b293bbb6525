"""Hierarchy closure over an arena of requirement nodes.

Requirements are addressed by integer index (position in sorted id order);
child and parent adjacency are index tuples. ``compute_closure`` runs one
iterative depth-first pass that

- rejects cycles (a back edge raises CyclicHierarchy naming the edge),
- yields a post-order (every node after all of its descendants),
- memoizes the transitive descendant set of every node.

Everything produced here is immutable and safe to share between the
status, annotation and metrics passes of one invocation.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Iterable
from dataclasses import dataclass

from reqgraph.store.models import HierarchyEdge


class CyclicHierarchy(ValueError):
    """The hierarchy contains a cycle.

    Attributes:
        child_id: Child side of the edge that closes the cycle.
        parent_id: Parent side of the edge that closes the cycle.
    """

    def __init__(self, child_id: str, parent_id: str) -> None:
        self.child_id = child_id
        self.parent_id = parent_id
        if child_id == parent_id:
            msg = f"Requirement '{child_id}' is its own parent"
        else:
            msg = (
                f"Cyclic hierarchy: edge '{child_id}' -> parent '{parent_id}' "
                f"makes '{parent_id}' its own ancestor"
            )
        super().__init__(msg)


@dataclass(frozen=True)
class RequirementArena:
    """Index-addressed requirement nodes and their adjacency.

    Attributes:
        ids: Requirement ids; position is the node index.
        children: children[i] holds the child indices of node i.
        parents: parents[i] holds the parent indices of node i.
    """

    ids: tuple[str, ...]
    children: tuple[tuple[int, ...], ...]
    parents: tuple[tuple[int, ...], ...]

    @classmethod
    def from_edges(
        cls, requirement_ids: Iterable[str], edges: Iterable[HierarchyEdge]
    ) -> RequirementArena:
        """Build an arena from requirement ids and hierarchy edges.

        Raises:
            KeyError: If an edge names an unknown requirement.
        """
        ids = tuple(sorted(set(requirement_ids)))
        index = {req_id: i for i, req_id in enumerate(ids)}
        children: list[set[int]] = [set() for _ in ids]
        parents: list[set[int]] = [set() for _ in ids]
        for edge in edges:
            if edge.child_id not in index:
                raise KeyError(f"Hierarchy edge references unknown requirement '{edge.child_id}'")
            if edge.parent_id not in index:
                raise KeyError(
                    f"Hierarchy edge references unknown requirement '{edge.parent_id}'"
                )
            child, parent = index[edge.child_id], index[edge.parent_id]
            children[parent].add(child)
            parents[child].add(parent)
        return cls(
            ids=ids,
            children=tuple(tuple(sorted(c)) for c in children),
            parents=tuple(tuple(sorted(p)) for p in parents),
        )

    def __len__(self) -> int:
        return len(self.ids)

    def index_of(self, req_id: str) -> int:
        """Node index of a requirement.

        Raises:
            KeyError: If the requirement is unknown.
        """
        # ids are sorted
        i = bisect_left(self.ids, req_id)
        if i == len(self.ids) or self.ids[i] != req_id:
            raise KeyError(f"Unknown requirement '{req_id}'")
        return i


_WHITE, _GREY, _BLACK = 0, 1, 2


@dataclass(frozen=True)
class HierarchyClosure:
    """Transitive closure of the requirement hierarchy.

    Attributes:
        arena: The node arena the closure was computed from.
        order: Node indices in post-order (leaves first).
        descendants: descendants[i] is the set of all nodes below node i.
        leaves: Indices of nodes without children.
    """

    arena: RequirementArena
    order: tuple[int, ...]
    descendants: tuple[frozenset[int], ...]
    leaves: frozenset[int]

    @property
    def ids(self) -> tuple[str, ...]:
        return self.arena.ids

    def __contains__(self, req_id: object) -> bool:
        if not isinstance(req_id, str):
            return False
        try:
            self.arena.index_of(req_id)
        except KeyError:
            return False
        return True

    def _names(self, indices: Iterable[int]) -> frozenset[str]:
        ids = self.arena.ids
        return frozenset(ids[i] for i in indices)

    def is_leaf(self, req_id: str) -> bool:
        return self.arena.index_of(req_id) in self.leaves

    def children_of(self, req_id: str) -> frozenset[str]:
        return self._names(self.arena.children[self.arena.index_of(req_id)])

    def parents_of(self, req_id: str) -> frozenset[str]:
        return self._names(self.arena.parents[self.arena.index_of(req_id)])

    def descendants_of(self, req_id: str) -> frozenset[str]:
        return self._names(self.descendants[self.arena.index_of(req_id)])

    def ancestors_of(self, req_id: str) -> frozenset[str]:
        """All requirements that have req_id among their descendants."""
        target = self.arena.index_of(req_id)
        ancestors: set[int] = set()
        stack = list(self.arena.parents[target])
        while stack:
            node = stack.pop()
            if node not in ancestors:
                ancestors.add(node)
                stack.extend(self.arena.parents[node])
        return self._names(ancestors)

    def leaf_descendants_of(self, req_id: str) -> frozenset[str]:
        """Leaves below req_id; a leaf has no leaf descendants."""
        return self._names(self.descendants[self.arena.index_of(req_id)] & self.leaves)

    def leaf_ids(self) -> frozenset[str]:
        return self._names(self.leaves)

    def roots(self) -> frozenset[str]:
        """Requirements without a parent."""
        return self._names(i for i, p in enumerate(self.arena.parents) if not p)

    def ordered_ids(self) -> list[str]:
        """Requirement ids leaves first."""
        return [self.arena.ids[i] for i in self.order]


def compute_closure(arena: RequirementArena) -> HierarchyClosure:
    """Compute post-order, descendant sets and leaves in one traversal.

    Each node is expanded once; its descendant set is assembled from the
    already finished sets of its children, so the cost is proportional to
    the size of the result rather than to the number of node pairs.

    Raises:
        CyclicHierarchy: On a back edge (including a self edge).
    """
    n = len(arena)
    color = [_WHITE] * n
    descendants: list[frozenset[int]] = [frozenset()] * n
    order: list[int] = []

    for root in range(n):
        if color[root] != _WHITE:
            continue
        color[root] = _GREY
        # (node, iterator position into its children)
        stack: list[tuple[int, int]] = [(root, 0)]
        while stack:
            node, pos = stack[-1]
            kids = arena.children[node]
            if pos < len(kids):
                stack[-1] = (node, pos + 1)
                child = kids[pos]
                if color[child] == _GREY:
                    raise CyclicHierarchy(arena.ids[child], arena.ids[node])
                if color[child] == _WHITE:
                    color[child] = _GREY
                    stack.append((child, 0))
                continue
            stack.pop()
            below: set[int] = set()
            for child in kids:
                below.add(child)
                below |= descendants[child]
            descendants[node] = frozenset(below)
            color[node] = _BLACK
            order.append(node)

    return HierarchyClosure(
        arena=arena,
        order=tuple(order),
        descendants=tuple(descendants),
        leaves=frozenset(i for i in range(n) if not arena.children[i]),
    )


def closure_from_edges(
    requirement_ids: Iterable[str], edges: Iterable[HierarchyEdge]
) -> HierarchyClosure:
    """Convenience wrapper: build the arena and compute its closure."""
    return compute_closure(RequirementArena.from_edges(requirement_ids, edges))


__all__ = [
    "CyclicHierarchy",
    "HierarchyClosure",
    "RequirementArena",
    "closure_from_edges",
    "compute_closure",
]
