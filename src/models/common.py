# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared enumerations for profiles and tenant records.

Role strings arrive from the store in mixed casing ("Admin", "ADMIN",
"superadmin"). They are normalised exactly once, where documents enter the
core, through Role.normalize(). Nothing else compares role strings.
"""

from enum import Enum


class Role(str, Enum):
    """Closed set of actor roles.

    Canonical stored values are lowercase except ``superAdmin``.
    """

    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    SUPER_ADMIN = "superAdmin"

    @classmethod
    def normalize(cls, value: object) -> "Role":
        """Resolve a stored role value, falling back to least privilege.

        Args:
            value: Raw role value (any casing, None, or a Role).

        Returns:
            Matching Role, or STUDENT when the value is missing or unknown.
        """
        try:
            return cls.parse(value)
        except ValueError:
            return cls.STUDENT

    @classmethod
    def parse(cls, value: object) -> "Role":
        """Strictly resolve a role value case-insensitively.

        Args:
            value: Raw role value.

        Returns:
            Matching Role.

        Raises:
            ValueError: If the value does not name a role.
        """
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for role in cls:
                if role.value.lower() == lowered:
                    return role
        raise ValueError(f"Unknown role: {value!r}")

    def stored_variants(self) -> list[str]:
        """Casings of this role found in stored documents, canonical first."""
        variants = [self.value, self.value.lower(), self.value.upper(), self.value.capitalize()]
        if self is Role.SUPER_ADMIN:
            variants.append("SuperAdmin")
        return list(dict.fromkeys(variants))

    @property
    def is_tenant_member(self) -> bool:
        """Whether profiles with this role must belong to an organization."""
        return self is not Role.SUPER_ADMIN


class StatusEnum(str, Enum):
    """Lifecycle status shared by profiles and organizations."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def parse(cls, value: object) -> "StatusEnum":
        """Resolve a status value case-insensitively.

        Raises:
            ValueError: If the value is not a known status.
        """
        if isinstance(value, StatusEnum):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValueError(f"Unknown status: {value!r}")
