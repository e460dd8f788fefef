"""
Retry pass over transaction log entries whose last copy attempt failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

from integrator.sync.copier import DocumentCopier
from integrator.sync.types import LogEntry, LogStore
from integrator.utils.logging import get_logger

logger = get_logger("integrator.sync.reconciler")


@dataclass
class ReconcileResult:
    attempted: int = 0
    recovered: int = 0
    still_failing: int = 0
    store_errors: int = 0


async def reconcile_failures(
    history: Iterable[LogEntry],
    copier: DocumentCopier,
    store: LogStore,
) -> ReconcileResult:
    """
    Give every failing entry in *history* exactly one more copy attempt.

    Entries are retried in history order and persisted whatever the outcome.
    Neither copy nor store failures stop the pass.
    """
    result = ReconcileResult()
    for entry in history:
        if not entry.failing:
            continue

        result.attempted += 1
        previous_failures = entry.failure_count
        logger.info(f"Retrying previous failed copy attempt of doc {entry.document_id}")
        if await copier.copy(entry):
            result.recovered += 1
        else:
            result.still_failing += 1
            logger.warning(
                f"Failed to copy document <{entry.document_id}> on retry after "
                f"{previous_failures} failure(s): {entry.error}"
            )

        try:
            await asyncio.to_thread(store.store_entry, entry)
        except Exception as e:
            result.store_errors += 1
            logger.error(f"Failed to store log for document <{entry.document_id}>: {e}")

    return result
