"""
Shared aiohttp plumbing for the HIE and ingest clients.

Handles the session lifecycle, optional basic auth, a total request timeout,
request logging, and bounded transport retries.
"""

import asyncio
import time
from collections.abc import Mapping
from typing import Any

import aiohttp

from integrator.utils.logging import get_logger

logger = get_logger("integrator.clients.http")


def normalize_url(url: str) -> str:
    """Expand the ``:port`` shorthand to ``http://localhost:port``."""
    url = url.strip()
    if url.startswith(":"):
        return f"http://localhost{url}"
    return url


class HttpClient:
    """
    Base class for HTTP collaborators.

    Use as an async context manager to share one session across calls; used
    bare, a session is created on first request and must be closed with
    ``close()``.

    ``max_attempts`` counts transport attempts per request. It defaults to 1:
    document-level retries belong to the transaction log, not the wire.
    """

    def __init__(
        self,
        base_url: str,
        *,
        user: str | None = None,
        password: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 120,
        max_attempts: int = 1,
        retry_delay: float = 1.0,
    ):
        if not base_url:
            raise ValueError("base_url must be provided")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.base_url = normalize_url(base_url)
        self.auth = aiohttp.BasicAuth(user, password or "") if user else None
        self.default_headers = headers or {}
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

        self.session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()
        self._session_refcount = 0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists, creating it if needed."""
        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(
                    timeout=self.timeout,
                    headers=self.default_headers,
                    auth=self.auth,
                )
            return self.session

    async def __aenter__(self):
        await self._ensure_session()
        async with self._session_lock:
            self._session_refcount += 1
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        async with self._session_lock:
            self._session_refcount -= 1
            # Only close session if no other contexts are using it
            if self._session_refcount == 0 and self.session and not self.session.closed:
                await self.session.close()
                self.session = None

    async def close(self) -> None:
        """Explicitly close the session."""
        async with self._session_lock:
            if self.session and not self.session.closed:
                await self.session.close()
            self.session = None
            self._session_refcount = 0

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, str, Mapping[str, str], bytes]:
        """
        Send one request and return ``(status, reason, headers, body)``.

        Only transport errors (``aiohttp.ClientError``, timeouts) are retried;
        any HTTP status is returned to the caller to interpret.
        """
        attempt = 0
        while True:
            attempt += 1
            session = await self._ensure_session()
            start_time = time.monotonic()
            try:
                async with session.request(method, url, params=params, data=data, headers=headers) as response:
                    body = await response.read()
                    duration = time.monotonic() - start_time
                    log_level = logger.debug if response.status <= 299 else logger.warning
                    log_level(f"{method} {url} {response.status} {duration:.2f}s {len(body)}B")
                    return response.status, response.reason or "", response.headers.copy(), body
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.max_attempts:
                    raise
                logger.debug(f"Retry {attempt}/{self.max_attempts} for {method} {url}: {e}")
                await asyncio.sleep(self.retry_delay * attempt)
