# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Backend-neutral document store contract.

DocumentStore owns the read-degradation policy shared by every backend:

- queries without a limit are capped (default 50);
- a query rejected for a missing composite index is retried once without
  ordering, keeping filters and limit (a paged query is not retried);
- a permission-denied read returns an empty result instead of raising;
- counts use a server aggregate and fall back to measuring the full
  filtered set when aggregation is unavailable.

Writes never degrade: failures propagate as DocumentStoreError subclasses.
Backends implement the underscore primitives and translate their SDK
exceptions into this module's hierarchy.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Optional

from src.models.query import CREATED_AT_FIELD, UPDATED_AT_FIELD, Filter, Ordering

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 50


class DocumentStoreError(Exception):
    """Exception raised for document store failures.

    Attributes:
        message: Human-readable error description.
        collection: Collection the operation targeted.
        original_error: The underlying backend error.
    """

    def __init__(
        self,
        message: str,
        collection: str | None = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        """Initialize the store error.

        Args:
            message: Human-readable error description.
            collection: Collection the operation targeted.
            original_error: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.message = message
        self.collection = collection
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document does not exist."""

    pass


class DocumentExistsError(DocumentStoreError):
    """Raised when creating a document under an id that is already taken."""

    pass


class StorePermissionError(DocumentStoreError):
    """Raised when backend security rules reject an operation."""

    pass


class IndexRequiredError(DocumentStoreError):
    """Raised when a query needs a composite index that does not exist."""

    pass


class AggregationUnavailableError(DocumentStoreError):
    """Raised when a server-side count aggregate cannot be used."""

    pass


class _DeleteField:
    """Sentinel removing a field in a partial update."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


class DocumentStore(ABC):
    """Async multi-collection document store.

    Attributes:
        default_limit: Cap applied to queries without an explicit limit.
    """

    def __init__(self, default_limit: int = DEFAULT_QUERY_LIMIT) -> None:
        """Initialize the store.

        Args:
            default_limit: Cap applied to queries without an explicit limit.
        """
        self.default_limit = default_limit

    # ========== Reads ==========

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        ordering: Ordering | None = None,
        limit: int | None = None,
        start_after: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a filtered, ordered, capped query.

        Args:
            collection: Collection name.
            filters: Field filters (all must match).
            ordering: Optional single-field ordering.
            limit: Maximum documents; None applies the default cap.
            start_after: Ordering-field value of the last document of the
                previous page (ignored without ordering).

        Returns:
            Documents as dicts including their ``id``; empty when the
            backend denies the read.

        Raises:
            IndexRequiredError: If the index is missing and the query is
                unordered or continues from ``start_after``.
            DocumentStoreError: For failures other than permission denial.
        """
        effective_limit = self.default_limit if limit is None else limit
        filters = tuple(filters)

        try:
            try:
                return await self._run_query(
                    collection, filters, ordering, effective_limit, start_after
                )
            except IndexRequiredError:
                # An unordered retry cannot honour a page cursor
                if ordering is None or start_after is not None:
                    raise
                logger.warning(
                    "Missing index for %s ordered by %s; retrying without ordering",
                    collection,
                    ordering.field,
                )
                return await self._run_query(
                    collection, filters, None, effective_limit, None
                )
        except StorePermissionError:
            logger.warning("Permission denied reading %s; returning no documents", collection)
            return []

    async def count(self, collection: str, filters: Sequence[Filter] = ()) -> int:
        """Count the documents matching the filters.

        Args:
            collection: Collection name.
            filters: Field filters.

        Returns:
            True total, not limited by the default query cap. Zero when the
            backend denies the read.
        """
        filters = tuple(filters)

        try:
            try:
                return await self._run_count(collection, filters)
            except AggregationUnavailableError as e:
                logger.info("Count aggregate unavailable for %s (%s); measuring result set", collection, e)
                documents = await self._run_query(collection, filters, None, None, None)
                return len(documents)
        except StorePermissionError:
            logger.warning("Permission denied counting %s; returning 0", collection)
            return 0

    async def get(self, collection: str, document_id: str) -> dict[str, Any]:
        """Fetch one document.

        Args:
            collection: Collection name.
            document_id: Document id.

        Returns:
            Document dict including its ``id``.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            StorePermissionError: If the backend denies the read.
        """
        return await self._get(collection, document_id)

    # ========== Writes ==========

    async def create(
        self,
        collection: str,
        data: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        """Create a document stamped with server timestamps.

        Args:
            collection: Collection name.
            data: Document fields (an ``id`` key is ignored).
            document_id: Explicit id; None lets the store generate one.

        Returns:
            The document id.

        Raises:
            DocumentExistsError: If ``document_id`` is already taken.
        """
        timestamp = self.server_timestamp()
        payload = {
            **self._strip_id(data),
            CREATED_AT_FIELD: timestamp,
            UPDATED_AT_FIELD: timestamp,
        }
        return await self._create(collection, payload, document_id)

    async def set(
        self,
        collection: str,
        document_id: str,
        data: dict[str, Any],
        merge: bool = True,
    ) -> None:
        """Upsert a document under a known id.

        ``updatedAt`` is always stamped. ``createdAt`` is stamped when the
        document is replaced or did not exist yet, so a merge never resets
        the creation time of an existing document.

        Args:
            collection: Collection name.
            document_id: Document id.
            data: Document fields.
            merge: Merge into an existing document instead of replacing it.
        """
        timestamp = self.server_timestamp()
        payload = {**self._strip_id(data), UPDATED_AT_FIELD: timestamp}
        payload.pop(CREATED_AT_FIELD, None)
        if not merge or not await self._exists(collection, document_id):
            payload[CREATED_AT_FIELD] = timestamp
        await self._set(collection, document_id, payload, merge)

    async def _exists(self, collection: str, document_id: str) -> bool:
        try:
            await self._get(collection, document_id)
        except DocumentNotFoundError:
            return False
        return True

    async def update(self, collection: str, document_id: str, data: dict[str, Any]) -> bool:
        """Partially update an existing document.

        Args:
            collection: Collection name.
            document_id: Document id.
            data: Fields to change; DELETE_FIELD values remove the field.

        Returns:
            True on success.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        payload = {**self._strip_id(data), UPDATED_AT_FIELD: self.server_timestamp()}
        payload.pop(CREATED_AT_FIELD, None)
        await self._update(collection, document_id, payload)
        return True

    async def delete(self, collection: str, document_id: str) -> bool:
        """Delete a document.

        Returns:
            True on success.
        """
        await self._delete(collection, document_id)
        return True

    async def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _strip_id(data: dict[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in data.items() if key != "id"}

    # ========== Backend primitives ==========

    @abstractmethod
    def server_timestamp(self) -> Any:
        """Value the backend replaces with its commit time."""

    @abstractmethod
    async def _run_query(
        self,
        collection: str,
        filters: tuple[Filter, ...],
        ordering: Ordering | None,
        limit: int | None,
        start_after: Any,
    ) -> list[dict[str, Any]]:
        """Execute a query; ``limit=None`` means uncapped."""

    @abstractmethod
    async def _run_count(self, collection: str, filters: tuple[Filter, ...]) -> int:
        """Execute a server-side count aggregate."""

    @abstractmethod
    async def _get(self, collection: str, document_id: str) -> dict[str, Any]:
        """Fetch a document or raise DocumentNotFoundError."""

    @abstractmethod
    async def _create(
        self,
        collection: str,
        payload: dict[str, Any],
        document_id: str | None,
    ) -> str:
        """Create a document and return its id."""

    @abstractmethod
    async def _set(
        self,
        collection: str,
        document_id: str,
        payload: dict[str, Any],
        merge: bool,
    ) -> None:
        """Write a document under a known id."""

    @abstractmethod
    async def _update(self, collection: str, document_id: str, payload: dict[str, Any]) -> None:
        """Merge fields into an existing document."""

    @abstractmethod
    async def _delete(self, collection: str, document_id: str) -> None:
        """Delete a document."""
