"""Cascade engine: identity tracking, graph read, graph write, link reconciliation."""

from relcascade.cascade.identity import IdentityTracker
from relcascade.cascade.many_to_many import ManyToManyReconciler, ReconcileResult
from relcascade.cascade.reader import GraphReader
from relcascade.cascade.writer import GraphWriter

__all__ = [
    "GraphReader",
    "GraphWriter",
    "IdentityTracker",
    "ManyToManyReconciler",
    "ReconcileResult",
]
