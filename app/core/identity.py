"""
Bearer-token identity resolution.

Token validation is delegated to an external identity provider; the API
only needs the owner id a token belongs to.
"""

import logging
from typing import Dict, Optional, Protocol

import httpx

from app.core.config import Settings
from app.core.errors import AuthError

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    async def authenticate(self, token: str) -> str:
        """Return the owner id for a bearer token or raise AuthError."""
        ...


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header.

    Raises:
        AuthError: If the header is missing or not a bearer credential
    """
    if not authorization:
        raise AuthError("Unauthorized: Missing Authorization header")

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Unauthorized: Expected a bearer token")
    return token.strip()


class StaticTokenIdentityProvider:
    """Fixed token -> owner mapping, for development and tests."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)

    async def authenticate(self, token: str) -> str:
        owner_id = self.tokens.get(token)
        if owner_id is None:
            raise AuthError("Unauthorized: Invalid token")
        return owner_id


class HTTPIdentityProvider:
    """
    Validates tokens against an OpenID-style userinfo endpoint.

    The endpoint is called with the caller's bearer token and must answer
    200 with a JSON body containing ``sub`` (or ``id``).
    """

    def __init__(self, userinfo_url: str, timeout: float = 5.0):
        self.userinfo_url = userinfo_url
        self.timeout = timeout

    async def authenticate(self, token: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    self.userinfo_url,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise AuthError("Unauthorized: Identity provider unavailable")

        if response.status_code != 200:
            raise AuthError("Unauthorized: Invalid token")

        try:
            payload = response.json()
        except ValueError:
            raise AuthError("Unauthorized: Invalid identity response")

        if not isinstance(payload, dict):
            raise AuthError("Unauthorized: Invalid identity response")

        owner_id = payload.get("sub") or payload.get("id")
        if not owner_id:
            raise AuthError("Unauthorized: Identity response has no subject")
        return str(owner_id)


def build_identity_provider(config: Settings) -> IdentityProvider:
    """Choose the identity provider from configuration."""
    if config.identity_userinfo_url:
        return HTTPIdentityProvider(config.identity_userinfo_url, config.identity_timeout_seconds)

    tokens = config.static_token_map()
    if not tokens:
        logger.warning("No identity provider configured; every request will be rejected")
    return StaticTokenIdentityProvider(tokens)
