# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant-scoped data access.

Collection services live in ``collections``. Scopes, the entry point for
everything outside the super-admin path, live in ``scope``:

    from src.domains.tenancy.scope import DataAccess
"""

from src.domains.tenancy.collections import (
    BatchesService,
    BlogPostsService,
    CollectionService,
    CollectionServiceError,
    CoursesService,
    OperationNotSupportedError,
    OrganizationsService,
    PaymentsService,
    RecordingsService,
    RecordNotFoundError,
    RecordValidationError,
    TasksService,
    ZoomSessionsService,
)

__all__ = [
    "CollectionService",
    "CollectionServiceError",
    "RecordNotFoundError",
    "RecordValidationError",
    "OperationNotSupportedError",
    "CoursesService",
    "BatchesService",
    "RecordingsService",
    "PaymentsService",
    "BlogPostsService",
    "TasksService",
    "ZoomSessionsService",
    "OrganizationsService",
]
