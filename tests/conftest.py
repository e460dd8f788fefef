"""
Shared fixtures: scripted source and sink clients and sample data.
"""

from datetime import datetime
from pathlib import Path

import pytest

from integrator.exceptions import DownloadError, IngestError
from integrator.sync.transaction_log import MemoryTransactionLog
from integrator.sync.types import DocumentDescriptor, LogEntry, QueryRequest, QueryResponse

FIXTURES = Path(__file__).parent / "fixtures"

EE = "123456789"
CCD = "XML^HL7^231^CCD^C32"
QUERY_END = datetime(2016, 6, 8, 23, 59, 59)


class FakeSource:
    """
    Scripted source registry.

    ``responses`` are returned by successive queries; ``documents`` maps a
    retrieve URL to ``(bytes, content_type)`` or to an exception to raise.
    """

    def __init__(self, responses=None, documents=None, query_error=None):
        self.responses = list(responses or [])
        self.documents = dict(documents or {})
        self.query_error = query_error
        self.queries = []
        self.downloads = []

    async def query(self, ee, start=None, end=None):
        self.queries.append((ee, start, end))
        if self.query_error is not None:
            raise self.query_error
        if self.responses:
            return self.responses.pop(0)
        return QueryResponse(status=True, query=QueryRequest(ee=ee, end_date_time=QUERY_END))

    async def download(self, url):
        self.downloads.append(url)
        outcome = self.documents.get(url)
        if outcome is None:
            raise DownloadError(f"Document not found: {url}", url=url)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSink:
    """Records ingested documents; ``errors`` are raised by successive calls."""

    def __init__(self, errors=None):
        self.errors = list(errors or [])
        self.ingested = []

    async def ingest(self, content_type, content):
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        self.ingested.append((content_type, content))


def descriptor(doc_id, document_type=CCD, **kwargs):
    return DocumentDescriptor(
        retrieve_url=kwargs.pop("retrieve_url", f"http://test.foo.net/document/{doc_id}"),
        document_type=document_type,
        document_id=doc_id,
        title=kwargs.pop("title", f"Document {doc_id}"),
        **kwargs,
    )


def response(*descriptors, ee=EE, end=QUERY_END, status=True, error=""):
    return QueryResponse(
        status=status,
        result=list(descriptors),
        error=error,
        query=QueryRequest(ee=ee, end_date_time=end),
    )


def entry(doc_id, log_date, *, failure_count=0, error="", ee=EE, document_type=CCD):
    return LogEntry(
        document_id=doc_id,
        ee=ee,
        retrieve_url=f"http://test.foo.net/document/{doc_id}",
        document_type=document_type,
        log_date=log_date,
        failure_count=failure_count,
        error=error or ("previous failure" if failure_count else ""),
    )


@pytest.fixture
def store():
    return MemoryTransactionLog()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def ingest_failure():
    return IngestError("Failed to post content.  Received 500: Internal Server Error", status=500)
