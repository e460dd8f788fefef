"""
Type definitions for the synchronization engine and its collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol


@dataclass
class DocumentDescriptor:
    """One document as reported by a source registry query."""

    retrieve_url: str
    document_type: str
    document_id: str
    title: str = ""
    hash: str = ""
    size: int = 0
    creation_time: datetime | None = None


@dataclass
class QueryRequest:
    """Echo of the query as the source registry executed it."""

    ee: str = ""
    env: str = ""
    host: str = ""
    start_date_time: datetime | None = None
    end_date_time: datetime | None = None
    query_start_date_time: datetime | None = None
    query_complete_date_time: datetime | None = None


@dataclass
class QueryResponse:
    """
    Result of a source registry query.

    ``status`` is the registry's own verdict; a response can arrive intact
    and still report a logical failure in ``error``.
    """

    status: bool
    result: list[DocumentDescriptor] = field(default_factory=list)
    error: str = ""
    query: QueryRequest = field(default_factory=QueryRequest)


@dataclass
class LogEntry:
    """
    Transaction log record of one document for one subject.

    ``log_date`` is the end of the query window that discovered the document,
    not its creation time; it drives the next run's watermark. A positive
    ``failure_count`` is the number of consecutive failed copy attempts and
    always comes with a non-empty ``error``.
    """

    document_id: str
    ee: str
    retrieve_url: str
    document_type: str
    log_date: datetime
    title: str = ""
    hash: str = ""
    size: int = 0
    creation_time: datetime | None = None
    error: str = ""
    failure_count: int = 0

    @classmethod
    def discovered(cls, descriptor: DocumentDescriptor, *, ee: str, log_date: datetime) -> LogEntry:
        """Create a fresh entry for a newly discovered document."""
        return cls(
            document_id=descriptor.document_id,
            ee=ee,
            retrieve_url=descriptor.retrieve_url,
            document_type=descriptor.document_type,
            log_date=log_date,
            title=descriptor.title,
            hash=descriptor.hash,
            size=descriptor.size,
            creation_time=descriptor.creation_time,
        )

    @property
    def failing(self) -> bool:
        return self.failure_count > 0

    def record_failure(self, error: str) -> None:
        # A failing entry always carries a message
        self.error = error or "unknown error"
        self.failure_count += 1

    def record_success(self) -> None:
        self.error = ""
        self.failure_count = 0


class SourceClient(Protocol):
    """
    Source registry protocol.

    ``query`` raises ``SourceQueryError`` on transport failure; ``download``
    raises ``DownloadError`` when the document cannot be retrieved.
    """

    async def query(
        self, ee: str, start: datetime | None = None, end: datetime | None = None
    ) -> QueryResponse: ...

    async def download(self, url: str) -> tuple[bytes, str]: ...


class SinkClient(Protocol):
    """Ingest sink protocol; raises ``IngestError`` when content is rejected."""

    async def ingest(self, content_type: str, content: bytes) -> None: ...


class LogStore(Protocol):
    """
    Transaction log protocol.

    The engine calls both methods from worker threads, so implementations
    must be thread safe. Both raise ``LogStoreError`` on storage failures and
    ``store_entry`` also rejects entries without a document id. Upserts are
    keyed by ``(ee, document_id)``.
    """

    def find_entries(self, ee: str) -> list[LogEntry]: ...

    def store_entry(self, entry: LogEntry) -> None: ...
