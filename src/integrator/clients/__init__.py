"""
HTTP collaborators of the synchronization engine.
"""

from integrator.clients.hie import HieClient
from integrator.clients.http import HttpClient, normalize_url
from integrator.clients.ingest import IngestClient

__all__ = [
    "HttpClient",
    "HieClient",
    "IngestClient",
    "normalize_url",
]
