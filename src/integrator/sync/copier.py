"""
Copy pipeline: download one document from the source and forward it to the sink.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import quote

from integrator.exceptions import ConfigurationError
from integrator.sync.types import LogEntry, SinkClient, SourceClient
from integrator.utils.logging import get_logger

logger = get_logger("integrator.sync.copier")

LOCAL_COPY_SUFFIX = ".xml"


class DocumentCopier:
    """
    Copies documents from a source client to a sink client.

    When ``copy_dir`` is set, every downloaded document is also written to
    ``<copy_dir>/<ee>/<document_id>.xml`` (both percent-encoded) before it is
    forwarded. Local copies are best effort and never block the upload.
    """

    def __init__(self, source: SourceClient, sink: SinkClient, copy_dir: str | Path | None = None):
        if source is None:
            raise ConfigurationError("Source client must be configured")
        if sink is None:
            raise ConfigurationError("Ingest client must be configured")
        self.source = source
        self.sink = sink
        self.copy_dir = Path(copy_dir) if copy_dir else None
        if self.copy_dir is not None:
            try:
                self.copy_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"Cannot create copy directory {self.copy_dir}: {e}") from e

    async def copy(self, entry: LogEntry) -> bool:
        """
        Run one copy attempt for *entry* and record its outcome on the entry.

        Returns True on success. Download and ingest failures are recorded in
        ``entry.error`` / ``entry.failure_count`` rather than raised; the
        caller persists the entry either way.
        """
        logger.info(f"Downloading {entry.retrieve_url}")
        try:
            content, content_type = await self.source.download(entry.retrieve_url)
        except Exception as e:
            logger.warning(f"Failed download of {entry.document_id}: {e}")
            entry.record_failure(str(e))
            return False

        if self.copy_dir is not None:
            self._write_local_copy(entry, content)

        logger.info(f"Uploading {entry.document_id} to ingest service w/ content type {content_type}")
        try:
            await self.sink.ingest(content_type, content)
        except Exception as e:
            logger.warning(f"Failed upload of {entry.document_id}: {e}")
            entry.record_failure(str(e))
            return False

        entry.record_success()
        logger.info(f"Successful upload of {entry.document_id}")
        return True

    def local_copy_path(self, entry: LogEntry) -> Path | None:
        if self.copy_dir is None:
            return None
        return self.copy_dir / _safe_name(entry.ee) / f"{_safe_name(entry.document_id)}{LOCAL_COPY_SUFFIX}"

    def _write_local_copy(self, entry: LogEntry, content: bytes) -> None:
        path = self.local_copy_path(entry)
        assert path is not None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Couldn't create dir {path.parent} to store copy: {e}")
            return
        logger.debug(f"Copying {entry.document_id} to {path}")
        try:
            path.write_bytes(content)
        except OSError as e:
            logger.warning(f"Couldn't copy to {path}: {e}")


def _safe_name(value: str) -> str:
    # Percent-encoded so distinct identifiers stay distinct path components
    name = quote(value, safe="")
    if name in (".", ".."):
        return name.replace(".", "%2E")
    return name
