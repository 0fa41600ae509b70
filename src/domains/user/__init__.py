# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User profile domain.

Exports:
    UsersService: Profile listing, validation and writes.
    ProfileValidationError: Raised when a profile breaks an invariant.
"""

from src.domains.user.service import ProfileValidationError, UsersService

__all__ = [
    "UsersService",
    "ProfileValidationError",
]
