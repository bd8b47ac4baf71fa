"""
CloudFlare API client.

This module implements a thin async client for the CloudFlare API v4
covering the calls needed to update an existing DNS record: list zones,
list DNS records of a zone, and overwrite a DNS record.
Only API Token authentication is supported (not Global API Key).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from types import TracebackType
    from typing import Any, Final, Self


# CloudFlare API base URL
CF_API_BASE: Final[str] = "https://api.cloudflare.com/client/v4"

# HTTP timeout in seconds
HTTP_TIMEOUT: Final[float] = 30.0

CONTENT_TYPE: Final[str] = "application/json;charset=UTF-8"


logger = logging.getLogger(__name__)


class ProviderNetworkError(Exception):
    """
    Raised when an exchange with the provider API cannot complete.

    This covers transport failures (connection errors, timeouts) as well as
    response bodies that are not a JSON object.
    """


class CloudFlareClient:
    """
    Async client for the CloudFlare API v4.

    The client only performs the HTTP exchange and JSON decoding; callers
    are responsible for checking the `success` flag of the returned body.

    Use it as an async context manager so the underlying connection pool
    is closed when done::

        async with CloudFlareClient(token) as client:
            zones = await client.list_zones()
    """

    def __init__(
        self,
        api_token: str,
        *,
        base_url: str = CF_API_BASE,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        """
        Initialize the client.

        Parameters
        ----------
        api_token : str
            CloudFlare API Token.
        base_url : str, optional
            API base URL.
        timeout : float, optional
            Per-call timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": CONTENT_TYPE,
            },
            timeout=timeout,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def list_zones(self) -> dict[str, Any]:
        """
        List the zones accessible to the API token.

        Returns
        -------
        dict[str, Any]
            Decoded response body.
        """
        return await self._request("GET", "/zones")

    async def list_dns_records(self, zone_id: str) -> dict[str, Any]:
        """
        List the DNS records of a zone.

        Parameters
        ----------
        zone_id : str
            The zone ID.

        Returns
        -------
        dict[str, Any]
            Decoded response body.
        """
        return await self._request("GET", f"/zones/{zone_id}/dns_records")

    async def update_dns_record(
        self,
        zone_id: str,
        record_id: str,
        *,
        record_type: str,
        name: str,
        content: str,
    ) -> dict[str, Any]:
        """
        Overwrite an existing DNS record.

        Parameters
        ----------
        zone_id : str
            The zone ID.
        record_id : str
            The record ID.
        record_type : str
            The record type to keep (e.g. "A").
        name : str
            The record name to keep.
        content : str
            The new record content.

        Returns
        -------
        dict[str, Any]
            Decoded response body.
        """
        payload = {
            "type": record_type,
            "name": name,
            "content": content,
        }
        return await self._request(
            "PUT",
            f"/zones/{zone_id}/dns_records/{record_id}",
            json=payload,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Perform a request and decode the JSON body.

        Parameters
        ----------
        method : str
            HTTP method.
        path : str
            Path relative to the base URL.
        json : dict[str, Any] | None, optional
            JSON payload.

        Returns
        -------
        dict[str, Any]
            Decoded response body.

        Raises
        ------
        ProviderNetworkError
            If the exchange fails or the body is not a JSON object.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.RequestError as e:
            msg = f"{method} {url} failed: {e!r}"
            raise ProviderNetworkError(msg) from e

        logger.debug("[cloudflare] %s %s -> %d", method, url, response.status_code)
        logger.debug("[cloudflare] Response: %s", response.text)

        try:
            data = response.json()
        except ValueError as e:
            msg = f"{method} {url} returned a non-JSON body (HTTP {response.status_code})"
            raise ProviderNetworkError(msg) from e

        if not isinstance(data, dict):
            msg = f"{method} {url} returned unexpected JSON ({type(data).__name__})"
            raise ProviderNetworkError(msg)

        return data
