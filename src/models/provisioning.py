# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request and result models for user provisioning.

Requests are deliberately permissive (plain strings for role/status):
the provisioning service validates them itself so every rejection is
reported against a single form field before any network call.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, SecretStr


class ProvisioningState(str, Enum):
    """States of the provisioning saga."""

    VALIDATING = "validating"
    REJECTED = "rejected"
    IDENTITY_CREATING = "identity_creating"
    IDENTITY_CREATED = "identity_created"
    IDENTITY_FAILED = "identity_failed"
    PROFILE_CREATING = "profile_creating"
    PROFILE_ONLY_CREATING = "profile_only_creating"
    DONE = "done"
    DONE_WITH_WARNING = "done_with_warning"
    ABORTED = "aborted"
    PENDING_RECONCILIATION = "pending_reconciliation"


class UserProvisionRequest(BaseModel):
    """New profile, optionally with a working login.

    Attributes:
        email: Sign-in / contact email.
        name: Display name (defaults to the email local part).
        phone: Contact phone.
        role: Requested role (any casing).
        status: Initial status.
        organization_id: Target organization (super-admin callers only;
            other callers are pinned to their own organization).
        class_ids: Class memberships (required for students).
        password: Initial password; omitted means profile-only.
    """

    email: str
    name: str = ""
    phone: str = ""
    role: str = "student"
    status: str = "active"
    organization_id: str | None = None
    class_ids: list[str] = Field(default_factory=list)
    password: SecretStr | None = None


class OrganizationProvisionRequest(BaseModel):
    """New organization together with its first admin.

    Attributes:
        organization_name: Organization display name.
        status: Initial organization status.
        admin_email: First admin's email.
        admin_name: First admin's name.
        admin_phone: First admin's phone.
        admin_password: First admin's password (required).
    """

    organization_name: str
    status: str = "active"
    admin_email: str
    admin_name: str = ""
    admin_phone: str = ""
    admin_password: SecretStr | None = None


class ProvisioningResult(BaseModel):
    """Outcome of a successful provisioning run.

    Attributes:
        user_id: Created profile id.
        identity_linked: True when the profile id is a sign-in identity id.
        warning: Operator-facing warning (profile-only fallback).
        state: Terminal saga state.
        history: Ordered saga states visited.
        completed_at: When the run finished (UTC).
    """

    user_id: str
    identity_linked: bool
    warning: str | None = None
    state: ProvisioningState
    history: list[ProvisioningState] = Field(default_factory=list)
    completed_at: datetime | None = None


class OrganizationProvisioningResult(BaseModel):
    """Outcome of organization onboarding.

    Attributes:
        organization_id: Created organization id.
        admin: Provisioning result of the first admin.
    """

    organization_id: str
    admin: ProvisioningResult
