# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity token verification.

This module verifies identity tokens issued by the identity provider using
python-jose. Tokens are signed with rotating keys published as X.509
certificates; the ``kid`` header selects the certificate.

Example:
    >>> verifier = IdentityTokenVerifier(get_settings())
    >>> claims = await verifier.verify(id_token)
    >>> claims.uid
    'kq3...'
"""

import logging
from typing import TYPE_CHECKING

import httpx
from jose import ExpiredSignatureError, jwt
from jose.exceptions import JOSEError
from pydantic import BaseModel

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)


class TokenClaims(BaseModel):
    """Verified identity token claims.

    Attributes:
        uid: Subject (identity id).
        email: Account email.
        name: Display name.
        exp: Expiration timestamp.
        iat: Issued at timestamp.
    """

    uid: str
    email: str | None = None
    name: str | None = None
    exp: int
    iat: int


class TokenError(Exception):
    """Base exception for token verification."""

    pass


class TokenExpiredError(TokenError):
    """Raised when a token has expired."""

    pass


class InvalidTokenError(TokenError):
    """Raised when a token is invalid."""

    pass


class IdentityTokenVerifier:
    """Verifies identity tokens against the provider's signing keys.

    Attributes:
        _settings: Backend settings (project id, issuer, algorithms).
        _keys: Signing keys by key id.

    Example:
        >>> verifier = IdentityTokenVerifier(settings, keys={"kid-1": "secret"})
        >>> claims = await verifier.verify(token)
    """

    def __init__(
        self,
        settings: "Settings",
        keys: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the verifier.

        Args:
            settings: Application settings.
            keys: Fixed signing keys by key id; when given, keys are never
                downloaded.
            http_client: HTTP client used to download signing keys.
        """
        self._settings = settings.firebase
        self._keys: dict[str, str] = dict(keys or {})
        self._fixed_keys = keys is not None
        self._http_client = http_client

    async def refresh_keys(self) -> dict[str, str]:
        """Download the current signing certificates.

        Returns:
            Certificates by key id.

        Raises:
            TokenError: If the certificates cannot be downloaded.
        """
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self._settings.token_certs_url)
            else:
                async with httpx.AsyncClient(timeout=self._settings.request_timeout) as client:
                    response = await client.get(self._settings.token_certs_url)
            response.raise_for_status()
            keys = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to download token signing keys: %s", e)
            raise TokenError(f"Unable to download token signing keys: {e}") from e

        self._keys = {str(kid): str(cert) for kid, cert in keys.items()}
        logger.debug("Loaded %d token signing keys", len(self._keys))
        return self._keys

    async def _key_for(self, kid: str | None) -> str:
        if kid is None:
            raise InvalidTokenError("Token has no key id")
        if kid not in self._keys and not self._fixed_keys:
            await self.refresh_keys()
        key = self._keys.get(kid)
        if key is None:
            raise InvalidTokenError(f"Unknown signing key: {kid}")
        return key

    async def verify(self, token: str) -> TokenClaims:
        """Verify a token and return its claims.

        Args:
            token: Identity token.

        Returns:
            Verified claims.

        Raises:
            TokenExpiredError: If the token has expired.
            InvalidTokenError: If the token is invalid.
        """
        try:
            header = jwt.get_unverified_header(token)
        except JOSEError as e:
            raise InvalidTokenError(f"Malformed token: {e}") from e

        key = await self._key_for(header.get("kid"))

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=self._settings.token_algorithms,
                audience=self._settings.project_id,
                issuer=self._settings.token_issuer,
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except JOSEError as e:
            logger.warning("Token verification failed: %s", str(e))
            raise InvalidTokenError(f"Invalid token: {str(e)}") from e

        subject = payload.get("sub")
        if not subject:
            raise InvalidTokenError("Token has no subject")

        return TokenClaims(
            uid=subject,
            email=payload.get("email"),
            name=payload.get("name"),
            exp=payload["exp"],
            iat=payload["iat"],
        )
