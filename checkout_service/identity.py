from __future__ import annotations

import logging
from typing import Optional

import requests

from .config import Settings
from .errors import IdentityProviderError, Unauthenticated
from .ports import Identity

logger = logging.getLogger(__name__)


def bearer_token(authorization: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


class HttpIdentityProvider:
    """Resolves bearer tokens against the hosted auth server's ``/auth/v1/user`` endpoint."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10, session=None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpIdentityProvider":
        return cls(settings.auth_url, settings.auth_api_key, timeout=settings.http_timeout_seconds)

    def close(self):
        self.session.close()

    def resolve(self, credential: str) -> Identity:
        if not credential:
            raise Unauthenticated()

        try:
            response = self.session.get(
                f"{self.base_url}/auth/v1/user",
                headers={"apikey": self.api_key, "Authorization": f"Bearer {credential}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Identity provider unreachable: %s", e)
            raise IdentityProviderError() from e

        if response.status_code in (401, 403):
            raise Unauthenticated()
        if response.status_code != 200:
            logger.error("Identity provider answered HTTP %s", response.status_code)
            raise IdentityProviderError()

        try:
            user = response.json()
        except ValueError as e:
            raise IdentityProviderError() from e

        if not isinstance(user, dict) or not user.get("id"):
            raise Unauthenticated()
        return Identity(identity_id=str(user["id"]), email=user.get("email"))
