# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider exception hierarchy.

Provider error codes are mapped onto these classes in one place so
callers never branch on raw provider strings.
"""

from typing import Optional


class IdentityError(Exception):
    """Base exception for identity provider failures.

    Attributes:
        message: Human-readable error description.
        code: Provider error code, when one was returned.
        original_error: The underlying transport error.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class IdentityConflictError(IdentityError):
    """Raised when an account already exists for the email."""

    pass


class InvalidEmailError(IdentityError):
    """Raised when the provider rejects the email address."""

    pass


class WeakPasswordError(IdentityError):
    """Raised when the provider rejects the password as too weak."""

    pass


class InvalidCredentialsError(IdentityError):
    """Raised when sign-in credentials are wrong."""

    pass


class AccountDisabledError(IdentityError):
    """Raised when the account has been disabled."""

    pass


class NotSignedInError(IdentityError):
    """Raised when an operation needs a session the client does not hold."""

    pass


class IdentityUnavailableError(IdentityError):
    """Raised on transport failures, server errors and throttling."""

    pass


class FunctionCallError(IdentityError):
    """Raised when a callable function returns an error."""

    pass


class FunctionUnavailableError(FunctionCallError):
    """Raised when a callable function cannot be reached or is not deployed."""

    pass


class FunctionPermissionError(FunctionCallError):
    """Raised when a callable function rejects the caller."""

    pass


class FunctionResultError(FunctionCallError):
    """Raised when a callable function reports success with an unusable result.

    The server-side work may have happened; callers must not assume
    nothing was created.
    """

    pass
