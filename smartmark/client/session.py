from __future__ import annotations

import logging
from dataclasses import dataclass

from smartmark.client.api import ApiClient
from smartmark.client.errors import AuthRequired, StoreError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    user_id: int
    username: str


class IdentityClient:
    """Session lookup and sign-out against the server's identity routes."""

    def __init__(self, api: ApiClient):
        self._api = api

    def current_session(self) -> Session | None:
        response = self._api.request("GET", "/auth/session")
        if response.status_code == 401:
            return None
        if response.is_error:
            raise StoreError(
                f"session lookup failed ({response.status_code})",
                status_code=response.status_code,
            )
        user = response.json()["user"]
        return Session(user_id=user["id"], username=user["username"])

    def sign_out(self) -> None:
        """End the server session for a token or a session-cookie client."""
        response = self._api.request("DELETE", "/auth/session")
        if response.status_code == 401:
            logger.info("Sign-out requested without a live session")
            return
        if response.is_error:
            raise StoreError(
                f"sign-out failed ({response.status_code})",
                status_code=response.status_code,
            )


class SessionGate:
    def __init__(self, identity: IdentityClient):
        self._identity = identity

    def check(self) -> Session | None:
        return self._identity.current_session()

    def require(self) -> Session:
        session = self.check()
        if session is None:
            raise AuthRequired("sign-in required")
        return session
