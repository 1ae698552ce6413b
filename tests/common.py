from http import HTTPStatus
from typing import Any

import httpx

from ipgeo.clients.base import BaseGeolocationClient
from ipgeo.errors import UpstreamServiceError

GOOGLE_DNS_GEO = {
    "ip": "8.8.8.8",
    "city": "Mountain View",
    "region": "California",
    "country": "US",
    "loc": "37.4056,-122.0775",
    "postal": "94043",
    "timezone": "America/Los_Angeles",
}

SELF_GEO = {
    "ip": "203.0.113.7",
    "city": "Berlin",
    "region": "Berlin",
    "country": "DE",
    "loc": "52.5244,13.4105",
    "timezone": "Europe/Berlin",
}


class MockResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "", invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = {} if payload is None else payload
        self._invalid_json = invalid_json
        self.text = text

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class MockAsyncClient:
    """Minimal async context-manager mock for httpx.AsyncClient that records requested URLs."""

    def __init__(self, response: MockResponse, calls: list[tuple[str, Any]] | None = None) -> None:
        self._response = response
        self.calls = [] if calls is None else calls

    async def __aenter__(self) -> "MockAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(self, url: str, params: Any = None) -> MockResponse:
        self.calls.append((url, params))
        return self._response


class FailingAsyncClient:
    """Async client whose `get` raises the given httpx error to simulate transport failures."""

    def __init__(
        self, url: str, exc_type: type[httpx.RequestError] = httpx.ConnectError, *args: Any, **kwargs: Any
    ) -> None:
        self._url = url
        self._exc_type = exc_type

    async def __aenter__(self) -> "FailingAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(self, url: str, params: Any = None) -> MockResponse:
        request = httpx.Request("GET", url)
        raise self._exc_type("Network failure", request=request)


class FakeGeolocationClient(BaseGeolocationClient):
    """In-memory provider: returns canned payloads and records every lookup."""

    def __init__(self, payloads: dict[str, dict[str, Any]] | None = None, error: Exception | None = None) -> None:
        self.payloads = {"8.8.8.8": GOOGLE_DNS_GEO} if payloads is None else payloads
        self.error = error
        self.calls: list[str | None] = []

    async def lookup_ip(self, ip: str) -> dict[str, Any]:
        self.calls.append(ip)
        if self.error is not None:
            raise self.error
        if ip not in self.payloads:
            raise UpstreamServiceError(f"IP provider returned HTTP {HTTPStatus.NOT_FOUND.value}")
        return dict(self.payloads[ip])

    async def lookup_client_ip(self) -> dict[str, Any]:
        self.calls.append(None)
        if self.error is not None:
            raise self.error
        return dict(SELF_GEO)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
