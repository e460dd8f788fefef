"""
Integrator exception hierarchy.

All domain-specific exceptions inherit from IntegratorError, so callers can
catch any integrator failure with a single base class while still handling
the fatal and per-document cases separately.

Hierarchy::

    IntegratorError
    ├── ConfigurationError        - settings loading, parsing, validation
    ├── SourceError               - HIE source registry failures
    │   ├── SourceQueryError      - query transport/HTTP failure (fatal to run)
    │   ├── SourceResponseError   - query answered with status=false (fatal to run)
    │   └── DownloadError         - single document download (recoverable)
    ├── IngestError               - ingest sink rejected a document (recoverable)
    ├── LogStoreError             - transaction log read/write
    └── SchedulerError            - scheduling failures
        └── CronParseError        - invalid cron expression
"""

from __future__ import annotations


class IntegratorError(Exception):
    """Base exception for all integrator errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(IntegratorError):
    """Raised when settings are missing, malformed, or contradictory."""


# --- Source registry ---------------------------------------------------------


class SourceError(IntegratorError):
    """Raised when the HIE source registry cannot serve a request."""


class SourceQueryError(SourceError):
    """Raised when a document query fails at the transport or HTTP level."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, details={"status": status})
        self.status = status


class SourceResponseError(SourceError):
    """Raised when a query completes but reports ``status: false``."""


class DownloadError(SourceError):
    """Raised when a single document cannot be downloaded."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message, details={"url": url})
        self.url = url


# --- Ingest sink -------------------------------------------------------------


class IngestError(IntegratorError):
    """Raised when the ingest service does not accept a document."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message, details={"status": status})
        self.status = status


# --- Transaction log ---------------------------------------------------------


class LogStoreError(IntegratorError):
    """Raised when the transaction log cannot be read or written."""


# --- Scheduling --------------------------------------------------------------


class SchedulerError(IntegratorError):
    """Raised when the scheduler cannot be configured or run."""


class CronParseError(SchedulerError, ValueError):
    """Raised for cron expressions that cannot be parsed or never fire."""
