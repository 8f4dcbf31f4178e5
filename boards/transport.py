"""
HTTP transport to the Portabella backend.

Only ever sees ciphertext: callers encrypt bodies before handing them over
and decrypt responses afterwards.
"""

import json
import logging
from typing import Any, Optional

import httpx

from config import VERSION, config
from e2ee.exceptions import TransportError
from e2ee.fields import json_default, rehydrate_dates

logger = logging.getLogger(__name__)


class Transport:
    """Authenticated JSON requests against the backend."""

    def __init__(
        self,
        api_base_url: Optional[str] = None,
        auth=None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_base_url: Base URL of the backend API, config.BACKEND_URL when omitted
            auth: Object with get_auth_header() (an auth.AuthManager), or None
            timeout: Request timeout in seconds, config.REQUEST_TIMEOUT when omitted
            client: Pre-built client, mainly for tests
        """
        self.api_base_url = (api_base_url or config.BACKEND_URL).rstrip("/")
        self.auth = auth
        self.timeout = config.REQUEST_TIMEOUT if timeout is None else timeout
        self._client = client

    def _get_headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"portabella-e2ee/{VERSION}",
        }
        if extra:
            headers.update(extra)
        if self.auth is not None:
            headers.update(self.auth.get_auth_header())
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """
        Send a request and decode the response.

        Args:
            path: Path relative to the base URL
            method: HTTP method
            body: JSON-serialisable body (datetimes allowed)
            headers: Extra headers

        Returns:
            Decoded JSON with date fields as datetimes, or None for no content

        Raises:
            TransportError: On a 4xx/5xx status (with the server's text) or a network failure
        """
        client = await self._get_client()
        url = f"{self.api_base_url}{path}"
        content = json.dumps(body, default=json_default) if body is not None else None

        logger.debug(f"{method.upper()} {path}")
        try:
            response = await client.request(
                method.upper(),
                url,
                content=content,
                headers=self._get_headers(headers),
            )
        except httpx.RequestError as e:
            raise TransportError(f"Network error: {e}") from e

        if response.status_code >= 400:
            logger.warning(f"{method.upper()} {path} failed with {response.status_code}")
            raise TransportError(response.text, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None

        if 200 <= response.status_code < 300:
            return rehydrate_dates(response.json())

        return None

    async def get(self, path: str) -> Any:
        return await self.request(path, "GET")

    async def post(self, path: str, data: Any = None) -> Any:
        return await self.request(path, "POST", data)

    async def put(self, path: str, data: Any = None) -> Any:
        return await self.request(path, "PUT", data)

    async def delete(self, path: str) -> Any:
        return await self.request(path, "DELETE")
