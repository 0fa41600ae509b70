# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models shared across the core.

- common: Role and status enumerations
- query: Filter/ordering value types
- user: Profile model and invariants
- organization: Tenant model
- provisioning: Provisioning requests and results
"""

from src.models.common import Role, StatusEnum
from src.models.organization import Organization
from src.models.provisioning import (
    OrganizationProvisioningResult,
    OrganizationProvisionRequest,
    ProvisioningResult,
    ProvisioningState,
    UserProvisionRequest,
)
from src.models.query import Filter, FilterOperator, Ordering, SortDirection
from src.models.user import UserProfile, profile_invariant_violation

__all__ = [
    "Role",
    "StatusEnum",
    "Filter",
    "FilterOperator",
    "Ordering",
    "SortDirection",
    "UserProfile",
    "profile_invariant_violation",
    "Organization",
    "UserProvisionRequest",
    "OrganizationProvisionRequest",
    "ProvisioningResult",
    "OrganizationProvisioningResult",
    "ProvisioningState",
]
