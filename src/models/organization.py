# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Organization (tenant) model."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Organization(BaseModel):
    """Tenant document.

    Attributes:
        id: Document id, referenced by profiles as ``organizationId``.
        name: Display name.
        status: Lifecycle status string.
        created_at: Store-assigned creation timestamp.
        updated_at: Store-assigned update timestamp.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    status: str = "active"
    created_at: Any = Field(default=None, alias="createdAt")
    updated_at: Any = Field(default=None, alias="updatedAt")

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Organization":
        """Build an organization from a raw store document."""
        return cls.model_validate(document)

    @property
    def is_active(self) -> bool:
        """Check if the organization is active."""
        return self.status.lower() == "active"
