from typing import Any

import httpx

from ipgeo.errors import ApiError


class GeoApi:
    """Synchronous client for the geolocation history HTTP API.

    Holds the bearer token issued by `login` and sends it with every later call.
    Any `httpx.Client` can be injected, which is how tests point it at an
    in-process app.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        client: httpx.Client | None = None,
        token: str | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout_seconds)
        self.token = token

    def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self._client.request(method, path, headers=headers, **kwargs)
        if not response.is_success:
            raise ApiError(response.status_code, self._error_message(response))
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("message") if isinstance(body, dict) else None

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in and keep the issued token. Returns the user object."""
        body = self._send("POST", "/login", json={"email": email, "password": password})
        self.token = body["data"]["token"]
        return body["data"]["user"]

    def logout(self) -> None:
        try:
            self._send("POST", "/logout")
        finally:
            self.token = None

    def get_user(self) -> dict[str, Any]:
        return self._send("GET", "/user")["data"]

    def get_geolocation(self, ip: str = "") -> dict[str, Any]:
        return self._send("GET", "/geolocation", params={"ip": ip})

    def get_history(self) -> dict[str, Any]:
        return self._send("GET", "/history")

    def delete_history(self, ids: list[int]) -> dict[str, Any]:
        return self._send("DELETE", "/history", json={"ids": ids})
