"""Shared httpx plumbing for third-party catalog clients."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from playmirror.domain.exceptions import (
    AuthExpiredError,
    ExternalServiceError,
    TransientRemoteError,
)

logger = logging.getLogger(__name__)

# Browser-like UA - both catalogs answer bots with empty bodies
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/115.0"
)


class CatalogHttpClient:
    """Lazily created httpx.AsyncClient plus error translation.

    Hey future me - subclasses only build URLs and parse JSON. Every request goes
    through _get_json() so the error mapping is the same everywhere:
        401 / 403              → AuthExpiredError
        429 / 5xx / transport  → TransientRemoteError
        other 4xx, bad JSON    → ExternalServiceError
    """

    service_name = "catalog"
    base_url = ""
    default_headers: dict[str, str] = {}

    def __init__(
        self,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "User-Agent": DEFAULT_USER_AGENT,
                    "Accept": "application/json",
                    **self.default_headers,
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> CatalogHttpClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthExpiredError(
                    f"{self.service_name} rejected the credential (HTTP {status})",
                    http_status=status,
                ) from e
            if status == 429 or status >= 500:
                raise TransientRemoteError(
                    f"{self.service_name} request failed with HTTP {status}",
                    service=self.service_name,
                    http_status=status,
                ) from e
            raise ExternalServiceError(
                f"{self.service_name} request failed with HTTP {status}",
                service=self.service_name,
                http_status=status,
            ) from e
        except httpx.TransportError as e:
            raise TransientRemoteError(
                f"{self.service_name} request failed: {e}",
                service=self.service_name,
            ) from e

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{self.service_name} returned non-JSON body for {path}")
            raise ExternalServiceError(
                f"{self.service_name} returned an unreadable response",
                service=self.service_name,
                http_status=response.status_code,
            ) from e
