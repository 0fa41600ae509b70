# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SomoxLearn LMS access core.

Tenant-scoped data access, read-through caching, role resolution and
user provisioning for a multi-tenant learning management system backed
by a hosted document store and identity provider.
"""

__version__ = "0.1.0"
