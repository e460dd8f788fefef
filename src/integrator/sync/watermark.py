"""
Query watermark: where the next source query should start for a subject.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from integrator.sync.types import LogEntry

# Earlier than any document the registry can hold
EPOCH_FLOOR = datetime(1900, 1, 1)

# The registry's start bound is inclusive; without the offset the batch that
# set the watermark would be fetched again on every run.
WATERMARK_OFFSET = timedelta(seconds=1)


def compute_query_start(history: Iterable[LogEntry]) -> datetime:
    """
    Return the inclusive lower bound for the next query.

    One second past the latest ``log_date`` in *history*, or
    ``EPOCH_FLOOR`` when there is no history.
    """
    start = EPOCH_FLOOR
    for entry in history:
        if entry.log_date >= start:
            start = entry.log_date + WATERMARK_OFFSET
    return start
