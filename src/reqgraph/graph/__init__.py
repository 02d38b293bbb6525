"""Requirement graph engine.

Pure functions over a FactSnapshot, composed in dependency order:

    closure -> annotators -> status -> metrics
"""

from reqgraph.graph.annotators import (
    EffectiveAnnotations,
    effective_annotations,
    propagate_annotation,
)
from reqgraph.graph.closure import (
    CyclicHierarchy,
    HierarchyClosure,
    RequirementArena,
    closure_from_edges,
    compute_closure,
)
from reqgraph.graph.status import (
    EvidenceStatus,
    RequirementStatus,
    RequirementStatusSet,
    derive_evidence,
    derive_failed,
    derive_status,
)

__all__ = [
    "CyclicHierarchy",
    "EffectiveAnnotations",
    "EvidenceStatus",
    "HierarchyClosure",
    "RequirementArena",
    "RequirementStatus",
    "RequirementStatusSet",
    "closure_from_edges",
    "compute_closure",
    "derive_evidence",
    "derive_failed",
    "derive_status",
    "effective_annotations",
    "propagate_annotation",
]
