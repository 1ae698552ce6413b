from typing import Any

import httpx

from ipgeo.clients.base import BaseGeolocationClient, GeoData
from ipgeo.errors import UpstreamServiceError, UpstreamTimeoutError
from ipgeo.logger import logger


class IpInfoClient(BaseGeolocationClient):
    """Client for the https://ipinfo.io/ geolocation API.

    Uses the `/geo` endpoints, which answer with a small JSON object such as::

        {"ip": "8.8.8.8", "city": "Mountain View", "region": "California",
         "country": "US", "loc": "37.4056,-122.0775", "postal": "94043",
         "timezone": "America/Los_Angeles"}

    The body is returned untouched. Every call is a live round-trip: there is no
    caching and no retry.
    """

    def __init__(
        self,
        base_url: str = "https://ipinfo.io",
        timeout_seconds: float = 10.0,
        token: str | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._token = token

    async def lookup_ip(self, ip: str) -> GeoData:
        """Look up geolocation information for an explicit IP address."""
        url = f"{self._base_url}/{ip}/geo"
        return await self._request(url)

    async def lookup_client_ip(self) -> GeoData:
        """Look up geolocation information for the address the request originates from."""
        url = f"{self._base_url}/geo"
        return await self._request(url)

    async def _request(self, url: str) -> GeoData:
        params = {"token": self._token} if self._token else None
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(
                f"IP provider did not answer within {self._timeout_seconds}s: {repr(exc)}"
            ) from exc
        except httpx.RequestError as exc:
            raise UpstreamServiceError(f"Request to IP provider failed: {repr(exc)}") from exc

        if not response.is_success:
            logger.debug(f"IP provider error body url={url} status={response.status_code} body={response.text}")
            raise UpstreamServiceError(f"IP provider returned HTTP {response.status_code}")

        return self._parse_json(response)

    @staticmethod
    def _parse_json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamServiceError(f"Failed to decode IP provider response as JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise UpstreamServiceError(f"Expected a JSON object from IP provider, got {type(data).__name__}")
        return data
