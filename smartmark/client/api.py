"""HTTP access to a SmartMark server.

Authentication is either a bearer token (``POST /api/v1/auth/token``) or a
pre-authenticated ``httpx.Client`` handed in by the caller, e.g. one that
already carries a session cookie or wraps ``httpx.WSGITransport``.
"""

from __future__ import annotations

import logging

import httpx

from smartmark.client.config import ClientConfig
from smartmark.client.errors import StoreError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ApiClient:
    """Thin wrapper over ``httpx.Client`` that speaks the ``/api/v1`` routes."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        http: httpx.Client | None = None,
    ):
        self.config = config or ClientConfig.from_env()
        self._owns_http = http is None
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        if http is None:
            http = httpx.Client(
                base_url=self.config.base_url,
                headers=headers,
                timeout=self.config.timeout,
            )
        else:
            http.headers.update(headers)
        self._http = http

    @classmethod
    def login(
        cls,
        username: str,
        password: str,
        config: ClientConfig | None = None,
        http: httpx.Client | None = None,
    ) -> "ApiClient":
        """Exchange credentials for a bearer token and return a client using it."""
        config = config or ClientConfig.from_env()
        with cls(ClientConfig(config.base_url, None, config.timeout), http=http) as anon:
            response = anon.request(
                "POST",
                "/auth/token",
                json={
                    "username": username,
                    "password": password,
                    "token_name": "client",
                },
            )
        if response.status_code == 401:
            raise StoreError("invalid credentials", status_code=401)
        if response.is_error:
            raise StoreError(
                f"token request failed ({response.status_code})",
                status_code=response.status_code,
            )
        token = response.json()["token"]
        return cls(
            ClientConfig(config.base_url, token, config.timeout, config.poll_interval),
            http=http,
        )

    def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request; transport failures surface as ``StoreError``."""
        try:
            return self._http.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise StoreError(f"{method} {path} failed: {exc}") from exc

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
