"""Fact store: SQLite persistence, quarantine and reconciliation."""

from reqgraph.store.facts import FactSnapshot, FactStore, resolve_db_path
from reqgraph.store.reconcile import (
    BatchScope,
    PromotionResult,
    ReconcileDiff,
    Reconciler,
    StaleGenerationConflict,
)

__all__ = [
    "BatchScope",
    "FactSnapshot",
    "FactStore",
    "PromotionResult",
    "ReconcileDiff",
    "Reconciler",
    "StaleGenerationConflict",
    "resolve_db_path",
]
