"""
Integrator - incremental synchronization of HIE documents into an ingest service.

Each run retries previously failed documents, queries the source registry for
documents newer than the subject's watermark, and copies the new ones,
recording every attempt in a transaction log.
"""

__version__ = "0.2.0"

from integrator.clients import HieClient, IngestClient
from integrator.config import Config, Settings, load_config

# Exceptions
from integrator.exceptions import (
    ConfigurationError,
    CronParseError,
    DownloadError,
    IngestError,
    IntegratorError,
    LogStoreError,
    SchedulerError,
    SourceError,
    SourceQueryError,
    SourceResponseError,
)
from integrator.service import Scheduler, serve
from integrator.sync import (
    DocumentCopier,
    DocumentDescriptor,
    LogEntry,
    MemoryTransactionLog,
    QueryResponse,
    SyncEngine,
    SyncSummary,
    TransactionLog,
    compute_query_start,
)
from integrator.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    # Engine
    "SyncEngine",
    "SyncSummary",
    "DocumentCopier",
    "compute_query_start",
    # Data model
    "LogEntry",
    "DocumentDescriptor",
    "QueryResponse",
    # Stores
    "TransactionLog",
    "MemoryTransactionLog",
    # Clients
    "HieClient",
    "IngestClient",
    # Service
    "Scheduler",
    "serve",
    # Config
    "Config",
    "Settings",
    "load_config",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    # Exceptions
    "IntegratorError",
    "ConfigurationError",
    "SourceError",
    "SourceQueryError",
    "SourceResponseError",
    "DownloadError",
    "IngestError",
    "LogStoreError",
    "SchedulerError",
    "CronParseError",
]
