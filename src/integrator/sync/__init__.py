"""
Incremental synchronization engine.

Retries failed documents, discovers new ones since the last watermark, and
copies them from the source registry to the ingest sink, recording every
attempt in the transaction log.
"""

from integrator.sync.copier import DocumentCopier
from integrator.sync.dedup import filter_candidates, in_history, is_supported_format
from integrator.sync.engine import SyncEngine, SyncSummary
from integrator.sync.reconciler import reconcile_failures
from integrator.sync.transaction_log import MemoryTransactionLog, TransactionLog
from integrator.sync.types import (
    DocumentDescriptor,
    LogEntry,
    LogStore,
    QueryRequest,
    QueryResponse,
    SinkClient,
    SourceClient,
)
from integrator.sync.watermark import EPOCH_FLOOR, compute_query_start

__all__ = [
    "DocumentCopier",
    "DocumentDescriptor",
    "EPOCH_FLOOR",
    "LogEntry",
    "LogStore",
    "MemoryTransactionLog",
    "QueryRequest",
    "QueryResponse",
    "SinkClient",
    "SourceClient",
    "SyncEngine",
    "SyncSummary",
    "TransactionLog",
    "compute_query_start",
    "filter_candidates",
    "in_history",
    "is_supported_format",
    "reconcile_failures",
]
