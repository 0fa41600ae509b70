# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User provisioning and reconciliation.

Exports:
    UserProvisioningService: Creates profiles and their logins.
    ReconciliationService: Repairs orphaned identities and profiles.
"""

from src.domains.provisioning.reconciliation import (
    PendingReconciliation,
    PendingReconciliations,
    ReconciliationError,
    ReconciliationService,
    RoleReport,
)
from src.domains.provisioning.service import (
    OrphanedIdentityError,
    ProvisioningAbortedError,
    ProvisioningConflictError,
    ProvisioningError,
    ProvisioningValidationError,
    UserProvisioningService,
)

__all__ = [
    "UserProvisioningService",
    "ProvisioningError",
    "ProvisioningValidationError",
    "ProvisioningConflictError",
    "ProvisioningAbortedError",
    "OrphanedIdentityError",
    "ReconciliationService",
    "ReconciliationError",
    "PendingReconciliation",
    "PendingReconciliations",
    "RoleReport",
]
