# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer.

Domains:
    auth: Actor resolution, sessions, capability policy, password resets.
    tenancy: Collection services and tenant scopes.
    user: User profile service.
    provisioning: User and organization provisioning, reconciliation.
"""
