"""Object index: identification, storage, reverse references, reconciliation."""

from almig.index.identity import ObjectIdentity, identify, reference_key, suggest_file_name
from almig.index.indexer import Indexer, IndexSummary, rebuild_index
from almig.index.reconcile import ReconcileResult, Reconciler
from almig.index.references import ReverseReferenceRecord, ReverseReferenceStore
from almig.index.store import IndexRecord, IndexStore, RecordCorruptError

__all__ = [
    "IndexRecord",
    "IndexStore",
    "IndexSummary",
    "Indexer",
    "ObjectIdentity",
    "ReconcileResult",
    "RecordCorruptError",
    "Reconciler",
    "ReverseReferenceRecord",
    "ReverseReferenceStore",
    "identify",
    "rebuild_index",
    "reference_key",
    "suggest_file_name",
]
