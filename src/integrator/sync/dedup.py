"""
Candidate filtering: supported formats and duplicate suppression.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass, field

from integrator.sync.types import DocumentDescriptor, LogEntry
from integrator.utils.logging import get_logger

logger = get_logger("integrator.sync.dedup")


def is_supported_format(document_type: str, formats: Collection[str]) -> bool:
    return document_type in formats


def in_history(document_id: str, history: Iterable[LogEntry]) -> bool:
    return any(entry.document_id == document_id for entry in history)


@dataclass
class FilterResult:
    """Candidates that survived filtering, plus what was dropped and why."""

    accepted: list[DocumentDescriptor] = field(default_factory=list)
    unsupported: list[DocumentDescriptor] = field(default_factory=list)
    known: list[DocumentDescriptor] = field(default_factory=list)


def filter_candidates(
    candidates: Iterable[DocumentDescriptor],
    history: Iterable[LogEntry],
    formats: Collection[str],
) -> FilterResult:
    """
    Split *candidates* into new work and skipped documents.

    A document already in *history* is never rediscovered, even when its
    entry is failing; only the retry pass moves it forward.
    """
    known_ids = {entry.document_id for entry in history}
    result = FilterResult()
    for descriptor in candidates:
        if not is_supported_format(descriptor.document_type, formats):
            logger.info(f"Skipping {descriptor.document_id}: unsupported format {descriptor.document_type}")
            result.unsupported.append(descriptor)
            continue
        if descriptor.document_id in known_ids:
            logger.info(f"Skipping {descriptor.document_id}: already in history")
            result.known.append(descriptor)
            continue
        # First occurrence in a batch wins as well
        known_ids.add(descriptor.document_id)
        result.accepted.append(descriptor)
    return result
