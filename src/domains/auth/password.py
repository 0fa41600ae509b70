# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Administrative password resets.

Passwords are never stored or hashed by the core; the identity provider
owns credentials. Admins reset another user's password through the
``adminSetPassword`` server function after local validation.

Example:
    >>> service = PasswordService(functions, session, min_length=6)
    >>> await service.admin_set_password(actor, profile, "newpass1", "newpass1")
"""

import logging

from src.domains.auth.policy import Action, PermissionDeniedError, Resource, require
from src.domains.auth.resolver import Actor
from src.domains.auth.session import AuthSession
from src.infrastructure.identity import FunctionPermissionError, ProvisioningFunctionClient
from src.models.user import UserProfile

logger = logging.getLogger(__name__)

DEFAULT_MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(ValueError):
    """Raised when a new password is rejected locally.

    Attributes:
        field: Offending form field.
        message: Human-readable error description.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


def validate_password(
    password: str | None,
    confirm: str | None = None,
    min_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
) -> str:
    """Validate a new password.

    Args:
        password: Proposed password.
        confirm: Confirmation; None skips the match check.
        min_length: Minimum accepted length.

    Returns:
        The password.

    Raises:
        PasswordValidationError: If the password is missing, too short or
            does not match its confirmation.
    """
    if not password:
        raise PasswordValidationError("password", "Password is required.")
    if len(password) < min_length:
        raise PasswordValidationError(
            "password", f"Password must be at least {min_length} characters long."
        )
    if confirm is not None and password != confirm:
        raise PasswordValidationError("confirmPassword", "Passwords do not match.")
    return password


class PasswordService:
    """Resets passwords of other users on behalf of an admin."""

    def __init__(
        self,
        functions: ProvisioningFunctionClient,
        session: AuthSession,
        min_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
    ) -> None:
        """Initialize the service.

        Args:
            functions: Server function client.
            session: Session of the acting user (supplies the identity token).
            min_length: Minimum accepted password length.
        """
        self._functions = functions
        self._session = session
        self._min_length = min_length

    async def admin_set_password(
        self,
        actor: Actor,
        profile: UserProfile,
        new_password: str,
        confirm: str | None = None,
    ) -> None:
        """Set the password of another user's login.

        Args:
            actor: Acting admin.
            profile: Profile whose login is reset (its id is the identity id).
            new_password: New password.
            confirm: Confirmation of the new password.

        Raises:
            PasswordValidationError: If the password is rejected locally.
            PermissionDeniedError: If the actor may not reset this password.
        """
        validate_password(new_password, confirm, self._min_length)
        require(
            actor,
            Action.SET_PASSWORD,
            Resource(
                organization_id=profile.organization_id,
                role=profile.role,
                owner_id=profile.id,
            ),
        )
        if not profile.email:
            raise PasswordValidationError("email", "This user has no email address.")

        id_token = self._session.id_token
        if id_token is None:
            raise PermissionDeniedError("Please sign in again", Action.SET_PASSWORD)

        try:
            await self._functions.admin_set_password(profile.id, profile.email, new_password, id_token)
        except FunctionPermissionError as e:
            raise PermissionDeniedError(e.message, Action.SET_PASSWORD) from e

        logger.info("Password reset for %s by %s", profile.id, actor.uid)
