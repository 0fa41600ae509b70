# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firestore implementation of the document store.

Wraps ``google.cloud.firestore.AsyncClient``. Google API exceptions are
translated into the DocumentStoreError hierarchy so nothing above this
module depends on the SDK.

Example:
    from src.infrastructure.firestore import FirestoreDocumentStore

    store = FirestoreDocumentStore.from_settings(settings)
    users = await store.query("users", [Filter.eq("organizationId", "org-1")])
    await store.close()
"""

import inspect
import logging
from typing import TYPE_CHECKING, Any

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from src.infrastructure.firestore.base import (
    DELETE_FIELD,
    AggregationUnavailableError,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    IndexRequiredError,
    StorePermissionError,
)
from src.models.query import Filter, Ordering, SortDirection

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = logging.getLogger(__name__)

COUNT_ALIAS = "total"


class FirestoreDocumentStore(DocumentStore):
    """Document store backed by Cloud Firestore.

    Attributes:
        _client: Async Firestore client.

    Example:
        store = FirestoreDocumentStore(firestore.AsyncClient(project="demo"))
        doc_id = await store.create("courses", {"name": "Algebra", "organizationId": "org-1"})
    """

    def __init__(self, client: firestore.AsyncClient, default_limit: int = 50) -> None:
        """Initialize the store.

        Args:
            client: Async Firestore client.
            default_limit: Cap applied to queries without an explicit limit.
        """
        super().__init__(default_limit=default_limit)
        self._client = client

    @classmethod
    def from_settings(cls, settings: "Settings") -> "FirestoreDocumentStore":
        """Create a store for the configured project and database.

        Credentials are resolved by the Google client (application default
        credentials or the emulator environment variables).
        """
        client = firestore.AsyncClient(
            project=settings.firebase.project_id,
            database=settings.firebase.database,
        )
        return cls(client, default_limit=settings.query.default_limit)

    def server_timestamp(self) -> Any:
        """Return the Firestore server timestamp sentinel."""
        return firestore.SERVER_TIMESTAMP

    async def close(self) -> None:
        """Close the underlying client transport."""
        result = self._client.close()
        if inspect.isawaitable(result):
            await result

    # ========== Query building ==========

    def _build_query(
        self,
        collection: str,
        filters: tuple[Filter, ...],
        ordering: Ordering | None,
        limit: int | None,
        start_after: Any,
    ) -> Any:
        query: Any = self._client.collection(collection)

        for item in filters:
            query = query.where(filter=FieldFilter(item.field, item.operator.value, item.value))

        if ordering is not None:
            direction = (
                firestore.Query.DESCENDING
                if ordering.direction is SortDirection.DESC
                else firestore.Query.ASCENDING
            )
            query = query.order_by(ordering.field, direction=direction)
            if start_after is not None:
                query = query.start_after({ordering.field: start_after})

        if limit is not None:
            query = query.limit(limit)

        return query

    @staticmethod
    def _prepare(payload: dict[str, Any]) -> dict[str, Any]:
        return {
            key: firestore.DELETE_FIELD if value is DELETE_FIELD else value
            for key, value in payload.items()
        }

    @staticmethod
    def _translate(
        error: google_exceptions.GoogleAPIError,
        collection: str,
        action: str,
    ) -> DocumentStoreError:
        """Map a Google API exception to the store hierarchy."""
        message = f"Failed to {action} in {collection}"
        if isinstance(error, google_exceptions.PermissionDenied):
            return StorePermissionError(message, collection, error)
        if isinstance(error, google_exceptions.NotFound):
            return DocumentNotFoundError(message, collection, error)
        if isinstance(error, (google_exceptions.AlreadyExists, google_exceptions.Conflict)):
            return DocumentExistsError(message, collection, error)
        if isinstance(error, google_exceptions.FailedPrecondition):
            return IndexRequiredError(message, collection, error)
        return DocumentStoreError(message, collection, error)

    # ========== Backend primitives ==========

    async def _run_query(
        self,
        collection: str,
        filters: tuple[Filter, ...],
        ordering: Ordering | None,
        limit: int | None,
        start_after: Any,
    ) -> list[dict[str, Any]]:
        query = self._build_query(collection, filters, ordering, limit, start_after)
        try:
            snapshots = await query.get()
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, "query documents") from e

        return [{"id": snapshot.id, **(snapshot.to_dict() or {})} for snapshot in snapshots]

    async def _run_count(self, collection: str, filters: tuple[Filter, ...]) -> int:
        query = self._build_query(collection, filters, None, None, None)
        try:
            results = await query.count(alias=COUNT_ALIAS).get()
        except (
            google_exceptions.MethodNotImplemented,
            google_exceptions.FailedPrecondition,
            google_exceptions.InvalidArgument,
        ) as e:
            raise AggregationUnavailableError(
                f"Count aggregate rejected for {collection}", collection, e
            ) from e
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, "count documents") from e

        for aggregation in results:
            for result in aggregation:
                if result.alias == COUNT_ALIAS:
                    return int(result.value)

        raise AggregationUnavailableError(f"Count aggregate returned no value for {collection}", collection)

    async def _get(self, collection: str, document_id: str) -> dict[str, Any]:
        try:
            snapshot = await self._client.collection(collection).document(document_id).get()
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, f"get document {document_id}") from e

        if not snapshot.exists:
            raise DocumentNotFoundError(f"Document {collection}/{document_id} not found", collection)

        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    async def _create(
        self,
        collection: str,
        payload: dict[str, Any],
        document_id: str | None,
    ) -> str:
        try:
            if document_id is None:
                _, reference = await self._client.collection(collection).add(self._prepare(payload))
                return reference.id

            await self._client.collection(collection).document(document_id).create(
                self._prepare(payload)
            )
            return document_id
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, "create document") from e

    async def _set(
        self,
        collection: str,
        document_id: str,
        payload: dict[str, Any],
        merge: bool,
    ) -> None:
        try:
            await self._client.collection(collection).document(document_id).set(
                self._prepare(payload), merge=merge
            )
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, f"set document {document_id}") from e

    async def _update(self, collection: str, document_id: str, payload: dict[str, Any]) -> None:
        try:
            await self._client.collection(collection).document(document_id).update(
                self._prepare(payload)
            )
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, f"update document {document_id}") from e

    async def _delete(self, collection: str, document_id: str) -> None:
        try:
            await self._client.collection(collection).document(document_id).delete()
        except google_exceptions.GoogleAPIError as e:
            raise self._translate(e, collection, f"delete document {document_id}") from e
