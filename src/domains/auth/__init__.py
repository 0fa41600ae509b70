# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication and authorization services.

This module provides:
- Actor resolution from the profile linked to an identity
- The acting user's session state machine
- Identity token verification
- The capability policy consulted before every write
- Administrative password resets

Exports:
    Actor: Acting user with resolved role and organization.
    ProfileResolver: Loads the profile linked to an identity.
    AuthSession: Session of the acting user.
    IdentityTokenVerifier: Identity token verification.
    can / require: Capability policy.
    PasswordService: Administrative password resets.
"""

from src.domains.auth.password import PasswordService, PasswordValidationError, validate_password
from src.domains.auth.policy import Action, PermissionDeniedError, Resource, can, require
from src.domains.auth.resolver import Actor, ProfileResolver
from src.domains.auth.session import (
    AuthSession,
    NotAuthenticatedError,
    SessionError,
    SessionState,
    SessionSupersededError,
)
from src.domains.auth.tokens import (
    IdentityTokenVerifier,
    InvalidTokenError,
    TokenClaims,
    TokenError,
    TokenExpiredError,
)

__all__ = [
    "Actor",
    "ProfileResolver",
    "AuthSession",
    "SessionState",
    "SessionError",
    "NotAuthenticatedError",
    "SessionSupersededError",
    "IdentityTokenVerifier",
    "TokenClaims",
    "TokenError",
    "TokenExpiredError",
    "InvalidTokenError",
    "Action",
    "Resource",
    "PermissionDeniedError",
    "can",
    "require",
    "PasswordService",
    "PasswordValidationError",
    "validate_password",
]
