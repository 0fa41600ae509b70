# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Client for the server-side provisioning functions.

Functions follow the callable protocol: the request body is
``{"data": ...}`` with the caller's identity token as a bearer token, and
the response is either ``{"result": ...}`` or ``{"error": {"status",
"message"}}``. The deployed functions report most failures as INTERNAL
with a descriptive message, so the message text is inspected as well.
"""

import logging
from typing import TYPE_CHECKING, Any

import httpx

from src.infrastructure.identity.errors import (
    FunctionCallError,
    FunctionPermissionError,
    FunctionResultError,
    FunctionUnavailableError,
    IdentityConflictError,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)

UNAVAILABLE_STATUSES = frozenset({"UNAVAILABLE", "DEADLINE_EXCEEDED", "NOT_FOUND"})


class ProvisioningFunctionClient:
    """Calls ``createUser`` and ``adminSetPassword``.

    Attributes:
        base_url: Functions base URL.
    """

    def __init__(self, settings: "Settings", http_client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            settings: Application settings containing backend and provisioning configuration.
            http_client: Shared HTTP client; when omitted one is created and owned.
        """
        self._settings = settings
        self.base_url = settings.firebase.functions_base_url
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.firebase.request_timeout)
        return self._client

    async def call(self, name: str, data: dict[str, Any], id_token: str) -> Any:
        """Invoke a callable function.

        Args:
            name: Function name.
            data: Function payload.
            id_token: Caller's identity token.

        Returns:
            The function's ``result`` value.

        Raises:
            FunctionUnavailableError: Unreachable, timed out or not deployed.
            IdentityConflictError: The account already exists.
            FunctionPermissionError: The caller may not use the function.
            FunctionCallError: Any other function error.
        """
        try:
            response = await self._get_client().post(
                f"{self.base_url}/{name}",
                json={"data": data},
                headers={"Authorization": f"Bearer {id_token}"},
            )
        except httpx.RequestError as e:
            logger.error("Function %s unreachable: %s", name, e)
            raise FunctionUnavailableError(f"Function {name} is unreachable", original_error=e) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code == 200 and isinstance(payload, dict) and "result" in payload:
            return payload["result"]

        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            # No callable envelope: the function is missing or the gateway failed
            if response.status_code == 404 or response.status_code >= 500:
                raise FunctionUnavailableError(
                    f"Function {name} is not available (HTTP {response.status_code})",
                    code=str(response.status_code),
                )
            raise FunctionCallError(
                f"Function {name} failed (HTTP {response.status_code})",
                code=str(response.status_code),
            )

        status = str(error.get("status") or "")
        message = str(error.get("message") or f"Function {name} failed")
        lowered = message.lower()
        logger.warning("Function %s returned %s: %s", name, status, message)

        if status in UNAVAILABLE_STATUSES:
            raise FunctionUnavailableError(message, code=status)
        if status == "ALREADY_EXISTS" or "already exists" in lowered:
            raise IdentityConflictError(message, code=status or "ALREADY_EXISTS")
        if status in ("PERMISSION_DENIED", "UNAUTHENTICATED") or "permission denied" in lowered:
            raise FunctionPermissionError(message, code=status or "PERMISSION_DENIED")
        raise FunctionCallError(message, code=status)

    async def create_user(self, payload: dict[str, Any], id_token: str) -> str:
        """Create an identity (and legacy profile) through ``createUser``.

        Args:
            payload: ``email, password, name, role, phone, status, batchIds``.
            id_token: Caller's identity token.

        Returns:
            The new identity subject id.

        Raises:
            FunctionResultError: If the call succeeded without a ``uid``;
                the identity may exist.
        """
        result = await self.call(
            self._settings.provisioning.create_user_function, payload, id_token
        )
        uid = result.get("uid") if isinstance(result, dict) else None
        if not uid:
            raise FunctionResultError("createUser returned no uid")
        return uid

    async def admin_set_password(
        self,
        user_id: str,
        email: str,
        new_password: str,
        id_token: str,
    ) -> None:
        """Set another account's password through ``adminSetPassword``."""
        await self.call(
            self._settings.provisioning.set_password_function,
            {"userId": user_id, "email": email, "newPassword": new_password},
            id_token,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if owned."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
