# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store infrastructure.

DocumentStore defines the contract and read-degradation policy;
FirestoreDocumentStore implements it over Cloud Firestore.

Example:
    from src.infrastructure.firestore import FirestoreDocumentStore

    store = FirestoreDocumentStore.from_settings(settings)
    doc_id = await store.create("users", profile_data)
"""

from src.infrastructure.firestore.base import (
    DEFAULT_QUERY_LIMIT,
    DELETE_FIELD,
    AggregationUnavailableError,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    IndexRequiredError,
    StorePermissionError,
)
from src.infrastructure.firestore.client import FirestoreDocumentStore

__all__ = [
    "DocumentStore",
    "FirestoreDocumentStore",
    "DocumentStoreError",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "StorePermissionError",
    "IndexRequiredError",
    "AggregationUnavailableError",
    "DELETE_FIELD",
    "DEFAULT_QUERY_LIMIT",
]
