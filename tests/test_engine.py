"""
Tests for subject synchronization end to end, over in-memory collaborators.
"""

from datetime import datetime, timedelta

import pytest
from conftest import CCD, EE, QUERY_END, FakeSink, FakeSource, descriptor, entry, response

from integrator.exceptions import (
    ConfigurationError,
    DownloadError,
    LogStoreError,
    SourceQueryError,
    SourceResponseError,
)
from integrator.sync.engine import SyncEngine, SyncSummary
from integrator.sync.transaction_log import MemoryTransactionLog
from integrator.sync.watermark import EPOCH_FLOOR

FORMATS = [CCD]
DOC = (b"<ClinicalDocument/>", "text/xml")


def url(doc_id):
    return f"http://test.foo.net/document/{doc_id}"


class UnreadableStore(MemoryTransactionLog):
    def find_entries(self, ee):
        raise LogStoreError("database is locked")


class WriteFailingStore(MemoryTransactionLog):
    def __init__(self, broken_ids):
        super().__init__()
        self.broken_ids = set(broken_ids)

    def store_entry(self, entry):
        if entry.document_id in self.broken_ids:
            raise LogStoreError("disk full")
        super().store_entry(entry)


class TestConstruction:
    def test_requires_store(self):
        with pytest.raises(ConfigurationError):
            SyncEngine(FakeSource(), FakeSink(), None)

    def test_requires_sink(self, store):
        with pytest.raises(ConfigurationError):
            SyncEngine(FakeSource(), None, store)


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_supported_document_logged_unsupported_ignored(self, store, sink):
        source = FakeSource(
            responses=[response(descriptor("a"), descriptor("b", document_type="B"))],
            documents={url("a"): DOC, url("b"): DOC},
        )
        engine = SyncEngine(source, sink, store)

        summary = await engine.synchronize(EE, FORMATS)

        [logged] = store.find_entries(EE)
        assert logged.document_id == "a"
        assert logged.document_type == CCD
        assert logged.log_date == QUERY_END
        assert logged.failure_count == 0
        assert logged.error == ""
        assert source.downloads == [url("a")]
        assert summary.copied == 1
        assert summary.skipped_unsupported == 1

    @pytest.mark.asyncio
    async def test_first_run_queries_from_floor(self, store, sink):
        source = FakeSource()
        await SyncEngine(source, sink, store).synchronize(EE, FORMATS)
        assert source.queries == [(EE, EPOCH_FLOOR, None)]

    @pytest.mark.asyncio
    async def test_next_run_queries_past_watermark(self, store, sink):
        source = FakeSource(responses=[response(descriptor("a"))], documents={url("a"): DOC})
        engine = SyncEngine(source, sink, store)

        await engine.synchronize(EE, FORMATS)
        await engine.synchronize(EE, FORMATS)

        assert source.queries[1] == (EE, QUERY_END + timedelta(seconds=1), None)

    @pytest.mark.asyncio
    async def test_second_run_without_new_data_is_idempotent(self, store, sink):
        batch = response(descriptor("a"), descriptor("b"))
        source = FakeSource(responses=[batch, batch], documents={url("a"): DOC, url("b"): DOC})
        engine = SyncEngine(source, sink, store)

        await engine.synchronize(EE, FORMATS)
        summary = await engine.synchronize(EE, FORMATS)

        assert len(store) == 2
        assert len(sink.ingested) == 2
        assert summary.discovered == 0
        assert summary.skipped_known == 2

    @pytest.mark.asyncio
    async def test_entries_carry_descriptor_metadata(self, store, sink):
        created = datetime(2007, 3, 12, 9, 0, 0)
        doc = descriptor("a", title="Continuity of Care", hash="abc", size=42, creation_time=created)
        source = FakeSource(responses=[response(doc)], documents={url("a"): DOC})

        await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        [logged] = store.find_entries(EE)
        assert logged.title == "Continuity of Care"
        assert logged.hash == "abc"
        assert logged.size == 42
        assert logged.creation_time == created
        assert logged.retrieve_url == url("a")

    @pytest.mark.asyncio
    async def test_missing_window_end_falls_back_to_query_start(self, store, sink):
        source = FakeSource(responses=[response(descriptor("a"), end=None)], documents={url("a"): DOC})

        await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        [logged] = store.find_entries(EE)
        assert logged.log_date == EPOCH_FLOOR

    @pytest.mark.asyncio
    async def test_copy_failure_logged_for_next_run(self, store, sink):
        source = FakeSource(
            responses=[response(descriptor("a"), descriptor("b"))],
            documents={url("a"): DownloadError("Document unavailable"), url("b"): DOC},
        )

        summary = await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        entries = {e.document_id: e for e in store.find_entries(EE)}
        assert entries["a"].failure_count == 1
        assert entries["a"].error == "Document unavailable"
        assert entries["b"].failure_count == 0
        assert summary.failed == 1
        assert summary.failed_documents == ["a"]
        assert summary.copied == 1

    @pytest.mark.asyncio
    async def test_known_failing_document_not_rediscovered(self, sink):
        store = MemoryTransactionLog([entry("a", datetime(2016, 1, 1), failure_count=2)])
        source = FakeSource(
            responses=[response(descriptor("a"))],
            documents={url("a"): DownloadError("still gone")},
        )

        summary = await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        # One retry attempt, no second discovery attempt
        assert source.downloads == [url("a")]
        assert store.find_entries(EE)[0].failure_count == 3
        assert summary.discovered == 0
        assert summary.skipped_known == 1

    @pytest.mark.asyncio
    async def test_store_failure_only_affects_that_document(self, sink):
        store = WriteFailingStore({"a"})
        source = FakeSource(
            responses=[response(descriptor("a"), descriptor("b"))],
            documents={url("a"): DOC, url("b"): DOC},
        )

        summary = await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        assert [e.document_id for e in store.find_entries(EE)] == ["b"]
        assert summary.store_errors == 1
        assert len(sink.ingested) == 2


class TestRetryPass:
    @pytest.mark.asyncio
    async def test_recovered_entry_keeps_log_date_and_watermark(self, sink):
        logged = datetime(2016, 5, 1, 12, 0, 0)
        store = MemoryTransactionLog([entry("a", logged, failure_count=1)])
        source = FakeSource(documents={url("a"): DOC})

        summary = await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        [stored] = store.find_entries(EE)
        assert stored.failure_count == 0
        assert stored.error == ""
        assert stored.log_date == logged
        assert source.queries == [(EE, logged + timedelta(seconds=1), None)]
        assert summary.retry.recovered == 1

    @pytest.mark.asyncio
    async def test_failure_count_grows_then_resets(self, sink):
        store = MemoryTransactionLog([entry("a", datetime(2016, 5, 1), failure_count=3)])
        source = FakeSource(documents={url("a"): DownloadError("timeout")})
        engine = SyncEngine(source, sink, store)

        await engine.synchronize(EE, FORMATS)
        after_failure = store.find_entries(EE)[0]
        assert after_failure.failure_count == 4
        assert after_failure.error == "timeout"

        source.documents[url("a")] = DOC
        await engine.synchronize(EE, FORMATS)
        after_success = store.find_entries(EE)[0]
        assert after_success.failure_count == 0
        assert after_success.error == ""

    @pytest.mark.asyncio
    async def test_retry_happens_before_query(self, sink):
        store = MemoryTransactionLog([entry("a", datetime(2016, 5, 1), failure_count=1)])
        order = []

        class RecordingSource(FakeSource):
            async def query(self, ee, start=None, end=None):
                order.append("query")
                return await super().query(ee, start, end)

            async def download(self, url):
                order.append("download")
                return await super().download(url)

        source = RecordingSource(documents={url("a"): DOC})
        await SyncEngine(source, sink, store).synchronize(EE, FORMATS)
        assert order == ["download", "query"]


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_query_transport_failure_aborts_after_retries(self, sink):
        store = MemoryTransactionLog([entry("old", datetime(2016, 5, 1), failure_count=1)])
        source = FakeSource(
            query_error=SourceQueryError("Query to source server failed: connection refused"),
            documents={url("old"): DOC},
        )

        with pytest.raises(SourceQueryError):
            await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        # The retry pass still took effect, nothing new was logged
        [stored] = store.find_entries(EE)
        assert stored.document_id == "old"
        assert stored.failure_count == 0

    @pytest.mark.asyncio
    async def test_unsuccessful_query_status_aborts(self, store, sink):
        source = FakeSource(
            responses=[response(descriptor("a"), status=False, error="Unknown EE")],
            documents={url("a"): DOC},
        )

        with pytest.raises(SourceResponseError, match="Unknown EE"):
            await SyncEngine(source, sink, store).synchronize(EE, FORMATS)

        assert len(store) == 0
        assert source.downloads == []

    @pytest.mark.asyncio
    async def test_history_load_failure_aborts(self, sink):
        source = FakeSource()
        with pytest.raises(LogStoreError):
            await SyncEngine(source, sink, UnreadableStore()).synchronize(EE, FORMATS)
        assert source.queries == []


class TestSummary:
    def test_as_dict(self):
        summary = SyncSummary(ee=EE, query_start=datetime(2016, 6, 9), copied=2, failed=1, failed_documents=["x"])
        data = summary.as_dict()
        assert data["ee"] == EE
        assert data["query_start"] == "2016-06-09T00:00:00"
        assert data["copied"] == 2
        assert data["failed_documents"] == ["x"]
        assert data["retried"] == 0

    @pytest.mark.asyncio
    async def test_subject_from_response_owns_entries(self, store, sink):
        source = FakeSource(responses=[response(descriptor("a"), ee="")], documents={url("a"): DOC})
        await SyncEngine(source, sink, store).synchronize(EE, FORMATS)
        assert store.find_entries(EE)[0].ee == EE
