"""
HIE source registry client.

The registry answers document queries by subject (``ee``) and date window
and serves each document at its own retrieve URL.

Query response wire format::

    {
      "status": true,
      "error": "",
      "result": [
        {"retrieveURL": "...", "creationTime": "20070312090000", "title": "...",
         "documentType": "XML^HL7^231^CCD^C32", "documentID": "...",
         "hash": "...", "size": 92834}
      ],
      "query": {"env": "...", "host": "...", "ee": "123456789",
                "startDateTime": "2010-01-01T00:00:00",
                "endDateTime": "2016-06-08T23:59:59",
                "queryStartDateTime": "2016-06-08T23:59:59.123456789Z",
                "queryCompleteDateTime": "2016-06-09T00:00:01.5Z"}
    }

Window and creation times are registry-local wall-clock times and are kept
naive; the two query timing fields are UTC.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

import aiohttp

from integrator.clients.http import HttpClient
from integrator.exceptions import DownloadError, SourceQueryError
from integrator.sync.types import DocumentDescriptor, QueryRequest, QueryResponse
from integrator.utils.logging import get_logger

logger = get_logger("integrator.clients.hie")

QUERY_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
CREATION_TIME_FORMAT = "%Y%m%d%H%M%S"
DEFAULT_CONTENT_TYPE = "text/xml; charset=utf-8"

# RFC3339 with 0-9 fractional digits; Python keeps microseconds only
_RFC3339 = re.compile(r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d{1,9}))?Z$")


class HieClient(HttpClient):
    """aiohttp client for the HIE query and document endpoints."""

    async def query(
        self, ee: str, start: datetime | None = None, end: datetime | None = None
    ) -> QueryResponse:
        """
        Query documents for *ee* with a timestamp in ``[start, end]``.

        Raises:
            SourceQueryError: transport failure, non-200 status, or an
                unparseable body
        """
        params = {"ee": ee}
        if start is not None:
            params["startDateTime"] = start.strftime(QUERY_DATE_FORMAT)
        if end is not None:
            params["endDateTime"] = end.strftime(QUERY_DATE_FORMAT)

        try:
            status, reason, _headers, body = await self._request("GET", self.base_url, params=params)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise SourceQueryError(f"Query to source server failed: {e}") from e

        if status != 200:
            message = f"Non-OK response from source server: {status} ({reason})"
            remote_error = _error_from_body(body)
            if remote_error:
                message = f"{message}: {remote_error}"
            raise SourceQueryError(message, status=status)

        try:
            return parse_query_response(json.loads(body))
        except (ValueError, TypeError, KeyError) as e:
            raise SourceQueryError(f"Could not parse query response: {e}", status=status) from e

    async def download(self, url: str) -> tuple[bytes, str]:
        """
        Fetch one document, returning its bytes and content type.

        Raises:
            DownloadError: transport failure or a non-200 status; the
                registry's JSON ``error`` message is used when present
        """
        try:
            status, reason, headers, body = await self._request("GET", url)
        except (aiohttp.ClientError, TimeoutError) as e:
            raise DownloadError(f"Download failed: {e}", url=url) from e

        # On failure the registry sends a query-style JSON error, not a document
        if status != 200:
            remote_error = _error_from_body(body)
            raise DownloadError(remote_error or f"Non-OK response from source server: {status} ({reason})", url=url)

        return body, headers.get("Content-Type") or DEFAULT_CONTENT_TYPE


def parse_query_response(data: dict[str, Any]) -> QueryResponse:
    """Build a ``QueryResponse`` from decoded registry JSON."""
    if not isinstance(data, dict):
        raise ValueError(f"query response must be an object, got {type(data).__name__}")
    return QueryResponse(
        status=bool(data.get("status", False)),
        result=[parse_descriptor(item) for item in data.get("result") or []],
        error=str(data.get("error") or ""),
        query=parse_query_request(data.get("query") or {}),
    )


def parse_descriptor(item: dict[str, Any]) -> DocumentDescriptor:
    return DocumentDescriptor(
        retrieve_url=str(item["retrieveURL"]),
        document_type=str(item.get("documentType") or ""),
        document_id=str(item["documentID"]),
        title=str(item.get("title") or ""),
        hash=str(item.get("hash") or ""),
        size=int(item.get("size") or 0),
        creation_time=_parse_local(item.get("creationTime"), CREATION_TIME_FORMAT),
    )


def parse_query_request(item: dict[str, Any]) -> QueryRequest:
    return QueryRequest(
        ee=str(item.get("ee") or ""),
        env=str(item.get("env") or ""),
        host=str(item.get("host") or ""),
        start_date_time=_parse_local(item.get("startDateTime"), QUERY_DATE_FORMAT),
        end_date_time=_parse_local(item.get("endDateTime"), QUERY_DATE_FORMAT),
        query_start_date_time=parse_rfc3339(item.get("queryStartDateTime")),
        query_complete_date_time=parse_rfc3339(item.get("queryCompleteDateTime")),
    )


def parse_rfc3339(value: str | None) -> datetime | None:
    """Parse ``YYYY-MM-DDTHH:MM:SS[.fffffffff]Z``; empty values give None."""
    if not value:
        return None
    match = _RFC3339.match(value)
    if match is None:
        raise ValueError(f"invalid UTC timestamp: {value!r}")
    parsed = datetime.strptime(match.group("base"), QUERY_DATE_FORMAT)
    frac = match.group("frac")
    if frac:
        parsed = parsed.replace(microsecond=int(frac[:6].ljust(6, "0")))
    return parsed.replace(tzinfo=timezone.utc)


def _parse_local(value: str | None, fmt: str) -> datetime | None:
    if not value:
        return None
    return datetime.strptime(value, fmt)


def _error_from_body(body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("error") or "")
    return ""
