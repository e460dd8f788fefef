"""
Subject synchronization: retry failures, discover new documents, copy them.

One ``synchronize`` call is one run for one subject:

1. load the subject's transaction history;
2. retry every failing entry once;
3. compute the query watermark from the loaded history;
4. query the source registry from the watermark on and drop unsupported or
   already-known documents;
5. copy each remaining document and log the outcome.

Only history loading and the source query can fail the run. Individual
document failures are recorded in the log and picked up by the next run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from integrator.exceptions import ConfigurationError, SourceResponseError
from integrator.sync.copier import DocumentCopier
from integrator.sync.dedup import filter_candidates
from integrator.sync.reconciler import ReconcileResult, reconcile_failures
from integrator.sync.types import LogEntry, LogStore, QueryResponse, SinkClient, SourceClient
from integrator.sync.watermark import compute_query_start
from integrator.utils.logging import get_logger

logger = get_logger("integrator.sync.engine")


@dataclass
class SyncSummary:
    """Outcome of one subject run, for logs and callers that want counts."""

    ee: str
    query_start: datetime | None = None
    history_size: int = 0
    retry: ReconcileResult = field(default_factory=ReconcileResult)
    discovered: int = 0
    copied: int = 0
    failed: int = 0
    skipped_unsupported: int = 0
    skipped_known: int = 0
    store_errors: int = 0
    failed_documents: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "ee": self.ee,
            "query_start": self.query_start.isoformat() if self.query_start else None,
            "history_size": self.history_size,
            "retried": self.retry.attempted,
            "recovered": self.retry.recovered,
            "discovered": self.discovered,
            "copied": self.copied,
            "failed": self.failed,
            "skipped_unsupported": self.skipped_unsupported,
            "skipped_known": self.skipped_known,
            "store_errors": self.store_errors + self.retry.store_errors,
            "failed_documents": self.failed_documents[:25],
        }


class SyncEngine:
    """
    Incremental document synchronization for one subject at a time.

    The engine holds no per-subject state; runs for different subjects may
    overlap, runs for the same subject must not.
    """

    def __init__(
        self,
        source: SourceClient,
        sink: SinkClient,
        store: LogStore,
        *,
        copy_dir: str | Path | None = None,
    ):
        if store is None:
            raise ConfigurationError("Transaction log store must be configured")
        self.source = source
        self.store = store
        self.copier = DocumentCopier(source, sink, copy_dir=copy_dir)

    async def synchronize(self, ee: str, formats: Collection[str]) -> SyncSummary:
        """
        Synchronize all new documents of subject *ee* in *formats*.

        Raises:
            LogStoreError: history could not be loaded
            SourceQueryError: the source query failed in transport
            SourceResponseError: the source answered with ``status: false``
        """
        summary = SyncSummary(ee=ee)

        logger.info(f"Getting transaction history for {ee}")
        history = await asyncio.to_thread(self.store.find_entries, ee)
        summary.history_size = len(history)
        logger.info(f"Retrieved transaction history with {len(history)} entries")

        summary.retry = await reconcile_failures(history, self.copier, self.store)

        start = compute_query_start(history)
        summary.query_start = start

        response = await self._scan(ee, start)
        logger.info(f"Query returned {len(response.result)} results")

        filtered = filter_candidates(response.result, history, formats)
        summary.skipped_unsupported = len(filtered.unsupported)
        summary.skipped_known = len(filtered.known)

        # Entries belong to the subject the registry answered for, dated at
        # the end of the window it searched.
        owner = response.query.ee or ee
        log_date = response.query.end_date_time or start
        for descriptor in filtered.accepted:
            logger.info(f"Processing document {descriptor.document_id}")
            entry = LogEntry.discovered(descriptor, ee=owner, log_date=log_date)
            summary.discovered += 1
            if await self.copier.copy(entry):
                summary.copied += 1
            else:
                summary.failed += 1
                summary.failed_documents.append(entry.document_id)
                logger.warning(f"Failed to copy document <{entry.document_id}> on initial attempt: {entry.error}")
            await self._store(entry, summary)

        logger.info(
            f"Finished {ee}: {summary.copied} copied, {summary.failed} failed, "
            f"{summary.retry.recovered}/{summary.retry.attempted} retries recovered"
        )
        return summary

    async def _scan(self, ee: str, start: datetime) -> QueryResponse:
        logger.info(f"Querying records for {ee} starting at {start.isoformat()}")
        try:
            response = await self.source.query(ee, start, None)
        except Exception as e:
            logger.error(f"Failed to query documents for ee {ee} since {start.isoformat()}: {e}")
            raise
        if not response.status:
            logger.error(f"Unsuccessful query for ee {ee}: {response.error}")
            raise SourceResponseError(
                f"Unsuccessful query for ee {ee}: {response.error or 'no error message'}",
                details={"ee": ee, "start": start.isoformat()},
            )
        return response

    async def _store(self, entry: LogEntry, summary: SyncSummary) -> None:
        try:
            await asyncio.to_thread(self.store.store_entry, entry)
        except Exception as e:
            summary.store_errors += 1
            logger.error(f"Failed to store log for document <{entry.document_id}>: {e}")
