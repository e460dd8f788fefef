"""
Transaction log stores.

``TransactionLog`` keeps one row per (subject, document) in an ibis backend
(DuckDB unless another backend is passed in) and creates its schema on first
use. ``MemoryTransactionLog`` offers the same interface over a dict.
"""

from __future__ import annotations

import dataclasses
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

import ibis
import pandas as pd

from integrator.exceptions import LogStoreError
from integrator.sync.types import LogEntry
from integrator.utils.logging import get_logger
from integrator.utils.sql_escape import escape_qualified_name, sql_value

logger = get_logger("integrator.sync.transaction_log")

# Must differ from the database file stem, which DuckDB uses as catalog name
SCHEMA_NAME = "sync_log"
TABLE_NAME = "transactions"

# Column order of the transactions table; names match LogEntry fields
_COLUMNS = (
    "ee",
    "document_id",
    "retrieve_url",
    "document_type",
    "title",
    "hash",
    "size",
    "creation_time",
    "log_date",
    "error",
    "failure_count",
)


def connect_duckdb(path: str | Path = ":memory:") -> ibis.BaseBackend:
    """Open a DuckDB backend for the transaction log, creating parent dirs."""
    path = str(path)
    if path == ":memory:":
        return ibis.duckdb.connect()

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    try:
        return ibis.duckdb.connect(path)
    except Exception as e:
        error_str = str(e)
        if "lock" in error_str.lower() or "conflicting" in error_str.lower():
            pid_match = re.search(r"PID\s+(\d+)", error_str)
            pid_info = f" (PID: {pid_match.group(1)})" if pid_match else ""
            raise LogStoreError(
                f"Cannot open transaction log '{path}': file is locked by another process{pid_info}",
                details={"path": path},
            ) from None
        raise LogStoreError(f"Cannot open transaction log '{path}': {e}", details={"path": path}) from e


class TransactionLog:
    """Transaction log backed by an ibis connection."""

    def __init__(self, connection: ibis.BaseBackend | None = None, *, path: str | Path = ":memory:"):
        """
        Initialize the transaction log.

        Args:
            connection: Existing ibis backend to use (takes precedence over path)
            path: DuckDB database file, or ``:memory:``
        """
        self.path = str(path)
        self._connection = connection
        self._initialized = False
        # One connection is shared by worker threads; statements run under this lock
        self._lock = threading.RLock()
        self.table = escape_qualified_name(SCHEMA_NAME, TABLE_NAME)

    def _get_connection(self) -> ibis.BaseBackend:
        if self._connection is None:
            self._connection = connect_duckdb(self.path)
        if not self._initialized:
            self._initialize_schema(self._connection)
        return self._connection

    def _initialize_schema(self, conn: ibis.BaseBackend) -> None:
        """Create the integrator schema and transactions table if missing."""
        try:
            conn.raw_sql(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA_NAME}")
            conn.raw_sql(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    ee VARCHAR NOT NULL,
                    document_id VARCHAR NOT NULL,
                    retrieve_url VARCHAR,
                    document_type VARCHAR,
                    title VARCHAR,
                    hash VARCHAR,
                    size BIGINT,
                    creation_time TIMESTAMP,
                    log_date TIMESTAMP NOT NULL,
                    error VARCHAR,          -- empty when the last attempt succeeded
                    failure_count INTEGER,  -- consecutive failed attempts
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        except Exception as e:
            raise LogStoreError(f"Could not create transaction log schema: {e}") from e
        self._initialized = True
        logger.debug(f"Transaction log initialized at {self.table}")

    def find_entries(self, ee: str) -> list[LogEntry]:
        """Return every entry logged for subject *ee*, oldest batch first."""
        columns = ", ".join(_COLUMNS)
        query = (
            f"SELECT {columns} FROM {self.table} "
            f"WHERE ee = {sql_value(ee)} ORDER BY log_date, document_id"
        )
        try:
            with self._lock:
                result = self._get_connection().sql(query).execute()
        except LogStoreError:
            raise
        except Exception as e:
            raise LogStoreError(f"Could not read transaction history for {ee}: {e}", details={"ee": ee}) from e
        return [_row_to_entry(row) for row in result.to_dict("records")]

    def store_entry(self, entry: LogEntry) -> None:
        """Insert or replace the row for ``(entry.ee, entry.document_id)``."""
        if not entry.document_id:
            raise LogStoreError("Cannot store a transaction without a valid document ID")

        key = f"ee = {sql_value(entry.ee)} AND document_id = {sql_value(entry.document_id)}"
        values = ", ".join(sql_value(getattr(entry, attr)) for attr in _COLUMNS)
        with self._lock:
            conn = self._get_connection()
            try:
                conn.raw_sql("BEGIN TRANSACTION")
                try:
                    conn.raw_sql(f"DELETE FROM {self.table} WHERE {key}")
                    conn.raw_sql(f"INSERT INTO {self.table} ({', '.join(_COLUMNS)}) VALUES ({values})")
                except Exception:
                    conn.raw_sql("ROLLBACK")
                    raise
                conn.raw_sql("COMMIT")
            except Exception as e:
                raise LogStoreError(
                    f"Could not store transaction for document {entry.document_id}: {e}",
                    details={"ee": entry.ee, "document_id": entry.document_id},
                ) from e

    def close(self) -> None:
        with self._lock:
            if self._connection is not None and hasattr(self._connection, "disconnect"):
                self._connection.disconnect()
            self._connection = None
            self._initialized = False


class MemoryTransactionLog:
    """
    In-process transaction log.

    Keeps entries in first-stored order and hands out copies, so callers see
    the same isolation they would get from a database.
    """

    def __init__(self, entries: list[LogEntry] | None = None):
        self._entries: dict[tuple[str, str], LogEntry] = {}
        self._lock = threading.Lock()
        for entry in entries or []:
            self.store_entry(entry)

    def find_entries(self, ee: str) -> list[LogEntry]:
        with self._lock:
            return [dataclasses.replace(e) for (owner, _), e in self._entries.items() if owner == ee]

    def store_entry(self, entry: LogEntry) -> None:
        if not entry.document_id:
            raise LogStoreError("Cannot store a transaction without a valid document ID")
        with self._lock:
            self._entries[(entry.ee, entry.document_id)] = dataclasses.replace(entry)

    def __len__(self) -> int:
        return len(self._entries)


def _row_to_entry(row: dict[str, Any]) -> LogEntry:
    return LogEntry(
        ee=_to_str(row["ee"]),
        document_id=_to_str(row["document_id"]),
        retrieve_url=_to_str(row["retrieve_url"]),
        document_type=_to_str(row["document_type"]),
        title=_to_str(row["title"]),
        hash=_to_str(row["hash"]),
        size=_to_int(row["size"]),
        creation_time=_to_datetime(row["creation_time"]),
        log_date=_to_datetime(row["log_date"]) or datetime.min,
        error=_to_str(row["error"]),
        failure_count=_to_int(row["failure_count"]),
    )


def _to_str(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value)


def _to_int(value: Any) -> int:
    if value is None or pd.isna(value):
        return 0
    return int(value)


def _to_datetime(value: Any) -> datetime | None:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value
