from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import AuthError
from tenant_chat.infrastructure.auth.claims import principal_from_claims

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Principal:
        try:
            # PyJWKClient fetches keys with blocking urllib
            signing_key = await asyncio.to_thread(self._jwk_client.get_signing_key_from_jwt, token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256", "ES256"],
            )
        except jwt.PyJWTError as exc:
            logger.debug("JWKS verification against %s failed", self._jwks_url, exc_info=True)
            raise AuthError(f"Invalid token: {exc}") from exc
        return principal_from_claims(payload)
