# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider client over the Identity Toolkit REST API.

Each IdentityProviderClient instance holds at most one signed-in session,
like a named app instance of the browser SDK. Creating an account signs
the creating instance in as the new account, which is why provisioning
uses a separate named instance (see IdentityClientRegistry).

Example:
    client = IdentityProviderClient("temp-user-creation", settings)
    session = await client.create_account("new@school.test", "secret1")
    await client.update_display_name("New Student")
    await client.sign_out()
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from src.infrastructure.identity.errors import (
    AccountDisabledError,
    IdentityConflictError,
    IdentityError,
    IdentityUnavailableError,
    InvalidCredentialsError,
    InvalidEmailError,
    NotSignedInError,
    WeakPasswordError,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_NAME = "[DEFAULT]"

# Provider error codes -> exception class
ERROR_CODE_MAP: dict[str, type[IdentityError]] = {
    "EMAIL_EXISTS": IdentityConflictError,
    "INVALID_EMAIL": InvalidEmailError,
    "MISSING_EMAIL": InvalidEmailError,
    "WEAK_PASSWORD": WeakPasswordError,
    "MISSING_PASSWORD": WeakPasswordError,
    "INVALID_LOGIN_CREDENTIALS": InvalidCredentialsError,
    "EMAIL_NOT_FOUND": InvalidCredentialsError,
    "INVALID_PASSWORD": InvalidCredentialsError,
    "USER_DISABLED": AccountDisabledError,
    "TOO_MANY_ATTEMPTS_TRY_LATER": IdentityUnavailableError,
    "QUOTA_EXCEEDED": IdentityUnavailableError,
}

ERROR_MESSAGES: dict[type[IdentityError], str] = {
    IdentityConflictError: "An account already exists for this email",
    InvalidEmailError: "The email address is not valid",
    WeakPasswordError: "The password is too weak",
    InvalidCredentialsError: "Invalid email or password",
    AccountDisabledError: "This account has been disabled",
    IdentityUnavailableError: "The identity service is temporarily unavailable",
}


@dataclass(frozen=True)
class IdentitySession:
    """Signed-in identity held by a client instance.

    Attributes:
        uid: Identity subject id.
        email: Account email.
        id_token: Short-lived identity token.
        refresh_token: Token used to renew the identity token.
        display_name: Account display name.
    """

    uid: str
    email: str
    id_token: str
    refresh_token: str = ""
    display_name: str | None = None


def provider_error_code(payload: Any) -> str | None:
    """Extract the provider error code from an error response body.

    Messages look like ``"WEAK_PASSWORD : Password should be at least 6
    characters"``; the code is the part before the first separator.
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    message = str(error.get("message") or "")
    code = message.split(":", 1)[0].strip().split(" ", 1)[0]
    return code or None


class IdentityProviderClient:
    """One logical identity session against the Identity Toolkit API.

    Attributes:
        name: Instance name.
    """

    def __init__(
        self,
        name: str,
        settings: "Settings",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            name: Instance name.
            settings: Application settings containing backend configuration.
            http_client: Shared HTTP client; when omitted the instance
                creates and owns one.
        """
        self.name = name
        self._settings = settings.firebase
        self._client = http_client
        self._owns_client = http_client is None
        self._session: IdentitySession | None = None

    @property
    def is_signed_in(self) -> bool:
        """Whether this instance holds a session."""
        return self._session is not None

    def current_user(self) -> IdentitySession | None:
        """Return the session held by this instance."""
        return self._session

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.request_timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    def _endpoint(self, method: str) -> str:
        return f"{self._settings.identity_base_url}/accounts:{method}"

    async def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST to an accounts endpoint and map provider errors."""
        try:
            response = await self._get_client().post(
                self._endpoint(method),
                params={"key": self._settings.api_key.get_secret_value()},
                json=body,
            )
        except httpx.RequestError as e:
            logger.error("Identity provider unreachable (%s): %s", method, e)
            raise IdentityUnavailableError(
                "The identity service is temporarily unavailable", original_error=e
            ) from e

        if response.status_code == 200:
            return response.json()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        code = provider_error_code(payload)
        if response.status_code >= 500:
            error_class: type[IdentityError] = IdentityUnavailableError
        else:
            error_class = ERROR_CODE_MAP.get(code or "", IdentityError)

        message = ERROR_MESSAGES.get(error_class, f"Identity provider rejected {method}")
        logger.warning(
            "Identity provider error on %s: status=%s code=%s",
            method,
            response.status_code,
            code,
        )
        raise error_class(message, code=code)

    def _store_session(self, data: dict[str, Any], email: str) -> IdentitySession:
        self._session = IdentitySession(
            uid=data["localId"],
            email=data.get("email") or email,
            id_token=data.get("idToken", ""),
            refresh_token=data.get("refreshToken", ""),
            display_name=data.get("displayName") or None,
        )
        return self._session

    # ========== Account operations ==========

    async def create_account(self, email: str, password: str) -> IdentitySession:
        """Create an email/password account and sign this instance in as it.

        Args:
            email: Account email.
            password: Account password.

        Returns:
            Session of the new account; ``uid`` is the new subject id.

        Raises:
            IdentityConflictError: If the email is already registered.
            IdentityError: For other provider rejections.
        """
        data = await self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._store_session(data, email)
        logger.info("Identity account created on %s: uid=%s", self.name, session.uid)
        return session

    async def sign_in(self, email: str, password: str) -> IdentitySession:
        """Sign this instance in with email and password.

        Raises:
            InvalidCredentialsError: If the credentials are wrong.
            AccountDisabledError: If the account is disabled.
        """
        data = await self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._store_session(data, email)
        logger.info("Signed in on %s: uid=%s", self.name, session.uid)
        return session

    async def update_display_name(self, display_name: str) -> IdentitySession:
        """Set the display name of the signed-in account.

        Raises:
            NotSignedInError: If this instance holds no session.
        """
        if self._session is None:
            raise NotSignedInError(f"Client {self.name} is not signed in")

        data = await self._post(
            "update",
            {
                "idToken": self._session.id_token,
                "displayName": display_name,
                "returnSecureToken": False,
            },
        )
        self._session = IdentitySession(
            uid=self._session.uid,
            email=self._session.email,
            id_token=data.get("idToken") or self._session.id_token,
            refresh_token=data.get("refreshToken") or self._session.refresh_token,
            display_name=data.get("displayName", display_name),
        )
        return self._session

    async def sign_out(self) -> None:
        """Drop this instance's session."""
        if self._session is not None:
            logger.debug("Signed out on %s: uid=%s", self.name, self._session.uid)
        self._session = None

    async def aclose(self) -> None:
        """Close the HTTP client if this instance owns it."""
        self._session = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class IdentityClientRegistry:
    """Named identity client instances sharing one HTTP transport.

    Example:
        registry = IdentityClientRegistry(settings)
        acting = registry.default()
        secondary = registry.get_or_create("temp-user-creation")
        assert acting is not secondary
    """

    def __init__(self, settings: "Settings", http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._clients: dict[str, IdentityProviderClient] = {}

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._settings.firebase.request_timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._http_client

    def default(self) -> IdentityProviderClient:
        """Return the instance holding the acting user's session."""
        return self.get_or_create(DEFAULT_CLIENT_NAME)

    def get_or_create(self, name: str) -> IdentityProviderClient:
        """Return the named instance, creating it on first use."""
        client = self._clients.get(name)
        if client is None:
            client = IdentityProviderClient(name, self._settings, self._get_http_client())
            self._clients[name] = client
        return client

    async def aclose(self) -> None:
        """Close every instance and the shared transport."""
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
