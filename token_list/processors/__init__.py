from .deduplicator import DedupResult, Deduplicator
from .disjoint_set import DisjointSet
from .list_document import build_list_document, bump_version
from .reconciler import ListReconciler, ReconcileResult, ReconcileSources
from .verifier import ListVerifier, write_report

__all__ = [
    "DedupResult",
    "Deduplicator",
    "DisjointSet",
    "ListReconciler",
    "ListVerifier",
    "ReconcileResult",
    "ReconcileSources",
    "build_list_document",
    "bump_version",
    "write_report",
]
