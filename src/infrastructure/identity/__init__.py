# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider adapter.

- client: Email/password accounts over the Identity Toolkit REST API,
  one session per named instance
- functions: Server-side provisioning functions
- errors: Provider error hierarchy
"""

from src.infrastructure.identity.client import (
    DEFAULT_CLIENT_NAME,
    IdentityClientRegistry,
    IdentityProviderClient,
    IdentitySession,
)
from src.infrastructure.identity.errors import (
    AccountDisabledError,
    FunctionCallError,
    FunctionPermissionError,
    FunctionResultError,
    FunctionUnavailableError,
    IdentityConflictError,
    IdentityError,
    IdentityUnavailableError,
    InvalidCredentialsError,
    InvalidEmailError,
    NotSignedInError,
    WeakPasswordError,
)
from src.infrastructure.identity.functions import ProvisioningFunctionClient

__all__ = [
    "DEFAULT_CLIENT_NAME",
    "IdentityClientRegistry",
    "IdentityProviderClient",
    "IdentitySession",
    "ProvisioningFunctionClient",
    "IdentityError",
    "IdentityConflictError",
    "InvalidEmailError",
    "WeakPasswordError",
    "InvalidCredentialsError",
    "AccountDisabledError",
    "NotSignedInError",
    "IdentityUnavailableError",
    "FunctionCallError",
    "FunctionUnavailableError",
    "FunctionPermissionError",
    "FunctionResultError",
]
