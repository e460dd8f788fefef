"""
Ingest service client: posts raw document bytes with their content type.
"""

import aiohttp

from integrator.clients.http import HttpClient
from integrator.exceptions import IngestError


class IngestClient(HttpClient):
    """aiohttp client for the ingest endpoint."""

    async def ingest(self, content_type: str, content: bytes) -> None:
        """
        POST *content* to the ingest endpoint.

        Raises:
            IngestError: transport failure or any status other than 200
        """
        try:
            status, reason, _headers, _body = await self._request(
                "POST", self.base_url, data=content, headers={"Content-Type": content_type}
            )
        except (aiohttp.ClientError, TimeoutError) as e:
            raise IngestError(f"Failed to post content: {e}") from e

        if status != 200:
            raise IngestError(f"Failed to post content.  Received {status}: {reason}", status=status)
