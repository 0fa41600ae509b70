# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User profile model and profile invariants.

A profile is the application-level record of a human actor. Its document
id equals the identity provider's subject id once the two are linked.
Documents are stored with camelCase field names.
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.models.common import Role

# Legacy profiles written by the server-side function use batchIds
LEGACY_CLASS_FIELD = "batchIds"
CLASS_FIELD = "classIds"
ROLE_FIELD = "role"

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class UserProfile(BaseModel):
    """Profile document as seen by the core.

    Attributes:
        id: Document id (identity subject id when linked).
        email: Contact and sign-in email.
        name: Display name.
        phone: Contact phone.
        role: Normalised role.
        status: Lifecycle status string.
        organization_id: Owning organization (None for super-admins).
        class_ids: Class memberships (students only).
        created_at: Store-assigned creation timestamp.
        updated_at: Store-assigned update timestamp.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    email: str | None = None
    name: str | None = None
    phone: str = ""
    role: Role = Role.STUDENT
    status: str = "active"
    organization_id: str | None = Field(default=None, alias="organizationId")
    class_ids: list[str] = Field(default_factory=list, alias=CLASS_FIELD)
    created_at: Any = Field(default=None, alias="createdAt")
    updated_at: Any = Field(default=None, alias="updatedAt")

    @model_validator(mode="before")
    @classmethod
    def _fallback_to_batch_ids(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get(CLASS_FIELD) and data.get(LEGACY_CLASS_FIELD):
            data = {**data, CLASS_FIELD: list(data[LEGACY_CLASS_FIELD])}
        return data

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Role:
        return Role.normalize(value)

    @field_validator("phone", mode="before")
    @classmethod
    def _phone_default(cls, value: Any) -> str:
        return value or ""

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "UserProfile":
        """Build a profile from a raw store document (must contain ``id``)."""
        return cls.model_validate(document)

    @property
    def is_super_admin(self) -> bool:
        """Whether this profile is a platform super-admin."""
        return self.role is Role.SUPER_ADMIN


def profile_invariant_violation(
    role: Role,
    organization_id: str | None,
    class_ids: list[str] | None,
) -> tuple[str, str] | None:
    """Check the structural invariants of a profile.

    Args:
        role: Profile role.
        organization_id: Owning organization.
        class_ids: Class memberships.

    Returns:
        (field, message) of the first violated invariant, or None.
    """
    if role is Role.STUDENT and not class_ids:
        return CLASS_FIELD, "Students must be assigned to at least one class."
    if role is not Role.STUDENT and class_ids:
        return CLASS_FIELD, "Only students can be assigned to classes."
    if role.is_tenant_member and not organization_id:
        return "organizationId", f"A {role.value} profile must belong to an organization."
    if not role.is_tenant_member and organization_id:
        return "organizationId", "Super-admin profiles do not belong to an organization."
    return None
