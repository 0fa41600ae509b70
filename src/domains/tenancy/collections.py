# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Collection services for tenant data.

Each service owns one collection and exposes named accessors; callers
never build raw filters. List accessors are read through the query cache
and every write purges the collection's cache entries before returning,
whether or not the write succeeded.

``organization_id=None`` on a service accessor means "all tenants". Only
the super-admin path may pass None; everything else reaches these
services through a scope from src.domains.tenancy.scope, which binds the
organization for them.

Example:
    >>> courses = CoursesService(store, cache)
    >>> active = await courses.get_by_status("active", organization_id="org-1")
    >>> await courses.create({"name": "Algebra", "organizationId": "org-1"})
"""

import logging
from collections.abc import Sequence
from typing import Any, ClassVar

from src.domains.auth.policy import Action
from src.infrastructure.cache import QueryCache
from src.infrastructure.firestore import (
    DocumentNotFoundError,
    DocumentStore,
    StorePermissionError,
)
from src.infrastructure.firestore.collections import (
    COLLECTION_BATCHES,
    COLLECTION_BLOG_POSTS,
    COLLECTION_COURSES,
    COLLECTION_ORGANIZATIONS,
    COLLECTION_PAYMENTS,
    COLLECTION_RECORDINGS,
    COLLECTION_TASKS,
    COLLECTION_ZOOM_SESSIONS,
)
from src.models.organization import Organization
from src.models.query import (
    NEWEST_FIRST,
    ORGANIZATION_FIELD,
    Filter,
    Ordering,
    SortDirection,
)

logger = logging.getLogger(__name__)


class CollectionServiceError(Exception):
    """Base exception for collection service errors."""

    pass


class RecordNotFoundError(CollectionServiceError):
    """Raised when a record does not exist or is outside the caller's scope."""

    pass


class RecordValidationError(CollectionServiceError):
    """Raised when a record fails validation before any write.

    Attributes:
        field: Offending field.
        message: Human-readable error description.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class OperationNotSupportedError(CollectionServiceError):
    """Raised when a collection does not support an operation."""

    pass


class CollectionService:
    """Cached, tenant-aware access to one collection.

    Subclasses set ``collection`` and may add accessors. Every accessor
    listed in ``scoped_accessors`` must accept ``organization_id``; scopes
    bind that argument for them.

    Attributes:
        collection: Collection name.
        tenant_scoped: Whether documents carry ``organizationId``.
        default_order: Ordering of get_all.
        status_order: Ordering of get_by_status.
        allow_delete: Whether records may be deleted.
        scoped_accessors: Read accessors exposed through scopes.
        write_actions: Policy action checked per write operation.
    """

    collection: ClassVar[str]
    tenant_scoped: ClassVar[bool] = True
    default_order: ClassVar[Ordering | None] = NEWEST_FIRST
    status_order: ClassVar[Ordering | None] = None
    allow_delete: ClassVar[bool] = True
    scoped_accessors: ClassVar[tuple[str, ...]] = (
        "get_all",
        "get_by_status",
        "get_by_organization",
        "get_count",
    )
    write_actions: ClassVar[dict[str, Action]] = {
        "create": Action.WRITE_TENANT_DATA,
        "update": Action.WRITE_TENANT_DATA,
        "delete": Action.WRITE_TENANT_DATA,
    }

    def __init__(self, store: DocumentStore, cache: QueryCache) -> None:
        """Initialize the service.

        Args:
            store: Document store.
            cache: Query cache shared by all services.
        """
        self._store = store
        self._cache = cache

    # ========== Helpers ==========

    def _tenant_filters(self, organization_id: str | None) -> list[Filter]:
        if organization_id is None or not self.tenant_scoped:
            return []
        return [Filter.eq(ORGANIZATION_FIELD, organization_id)]

    def _prepare(self, document: dict[str, Any]) -> dict[str, Any]:
        """Normalise a document read from the store."""
        return document

    async def _list(
        self,
        filters: Sequence[Filter],
        ordering: Ordering | None,
        limit: int | None,
        use_cache: bool,
        start_after: Any = None,
    ) -> list[dict[str, Any]]:
        """Run a list query through the cache.

        ``use_cache=False`` skips the cache read but still stores the
        fresh result. Paginated reads bypass the cache entirely.
        """
        effective_limit = self._store.default_limit if limit is None else limit

        if start_after is not None:
            documents = await self._store.query(
                self.collection, filters, ordering, effective_limit, start_after
            )
            return [self._prepare(document) for document in documents]

        key = self._cache.build_key(self.collection, filters, ordering, effective_limit)
        if use_cache:
            cached = await self._cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s", key)
                return cached

        generation = self._cache.generation(self.collection)
        documents = await self._store.query(self.collection, filters, ordering, effective_limit)
        documents = [self._prepare(document) for document in documents]
        await self._cache.set(key, documents, generation)
        return documents

    # ========== Reads ==========

    async def get_all(
        self,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
        start_after: Any = None,
    ) -> list[dict[str, Any]]:
        """List records, newest first.

        Args:
            limit: Maximum records; None applies the store's default cap.
            organization_id: Tenant filter; None lists all tenants.
            use_cache: Read from the cache when possible.
            start_after: Ordering value of the previous page's last record.

        Returns:
            Records including their ``id``.
        """
        return await self._list(
            self._tenant_filters(organization_id),
            self.default_order,
            limit,
            use_cache,
            start_after,
        )

    async def get_by_status(
        self,
        status: str,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List records with a given status."""
        filters = [Filter.eq("status", status), *self._tenant_filters(organization_id)]
        return await self._list(filters, self.status_order, limit, use_cache)

    async def get_by_organization(
        self,
        organization_id: str,
        limit: int | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List the records of one organization."""
        if not organization_id:
            raise RecordValidationError(ORGANIZATION_FIELD, "An organization id is required.")
        return await self.get_all(limit=limit, organization_id=organization_id, use_cache=use_cache)

    async def get_count(self, organization_id: str | None = None) -> int:
        """Count records, uncapped by the default query limit."""
        return await self._store.count(self.collection, self._tenant_filters(organization_id))

    async def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        """Fetch one record.

        Returns:
            The record, or None if it does not exist or cannot be read.
        """
        try:
            document = await self._store.get(self.collection, document_id)
        except DocumentNotFoundError:
            return None
        except StorePermissionError:
            logger.warning("Permission denied reading %s/%s", self.collection, document_id)
            return None
        return self._prepare(document)

    # ========== Writes ==========

    def validate_create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalise a new record before any write.

        Raises:
            RecordValidationError: If the record is invalid.
        """
        if self.tenant_scoped and not data.get(ORGANIZATION_FIELD):
            raise RecordValidationError(
                ORGANIZATION_FIELD,
                f"Records in {self.collection} must belong to an organization.",
            )
        return dict(data)

    async def create(self, data: dict[str, Any], document_id: str | None = None) -> str:
        """Create a record.

        Args:
            data: Record fields.
            document_id: Explicit id; None lets the store generate one.

        Returns:
            The record id.
        """
        payload = self.validate_create(data)
        try:
            document_id = await self._store.create(self.collection, payload, document_id)
        finally:
            await self._cache.invalidate(self.collection)

        logger.info("Created %s/%s", self.collection, document_id)
        return document_id

    async def update(self, document_id: str, data: dict[str, Any]) -> bool:
        """Partially update a record.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        try:
            await self._store.update(self.collection, document_id, data)
        except DocumentNotFoundError as e:
            raise RecordNotFoundError(f"{self.collection}/{document_id} not found") from e
        finally:
            await self._cache.invalidate(self.collection)

        logger.info("Updated %s/%s", self.collection, document_id)
        return True

    async def delete(self, document_id: str) -> bool:
        """Delete a record.

        Raises:
            OperationNotSupportedError: If the collection keeps its records.
        """
        if not self.allow_delete:
            raise OperationNotSupportedError(f"Records in {self.collection} cannot be deleted")

        try:
            await self._store.delete(self.collection, document_id)
        finally:
            await self._cache.invalidate(self.collection)

        logger.info("Deleted %s/%s", self.collection, document_id)
        return True


# ========== Named services ==========


class CoursesService(CollectionService):
    collection = COLLECTION_COURSES


class BatchesService(CollectionService):
    """Classes (batches) that students are assigned to."""

    collection = COLLECTION_BATCHES


class RecordingsService(CollectionService):
    """Session recordings grouped by month."""

    collection = COLLECTION_RECORDINGS
    scoped_accessors = (*CollectionService.scoped_accessors, "get_by_month", "get_active")

    async def get_by_month(
        self,
        month: str,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List the recordings of a month in date order."""
        filters = [Filter.eq("month", month), *self._tenant_filters(organization_id)]
        return await self._list(filters, Ordering("date"), limit, use_cache)

    async def get_active(
        self,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List active recordings, newest first."""
        filters = [Filter.eq("status", "active"), *self._tenant_filters(organization_id)]
        return await self._list(filters, NEWEST_FIRST, limit, use_cache)


class PaymentsService(CollectionService):
    """Payment records. Payments are never deleted."""

    collection = COLLECTION_PAYMENTS
    allow_delete = False
    scoped_accessors = (*CollectionService.scoped_accessors, "get_by_user")

    async def get_by_user(
        self,
        user_id: str,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        filters = [Filter.eq("userId", user_id), *self._tenant_filters(organization_id)]
        return await self._list(filters, None, limit, use_cache)


class BlogPostsService(CollectionService):
    collection = COLLECTION_BLOG_POSTS
    scoped_accessors = (*CollectionService.scoped_accessors, "get_published")

    async def get_published(
        self,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List published posts."""
        filters = [Filter.eq("status", "published"), *self._tenant_filters(organization_id)]
        return await self._list(filters, None, limit, use_cache)


class TasksService(CollectionService):
    collection = COLLECTION_TASKS
    scoped_accessors = (*CollectionService.scoped_accessors, "get_by_user")

    async def get_by_user(
        self,
        user_id: str,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List a user's tasks, newest first."""
        filters = [Filter.eq("userId", user_id), *self._tenant_filters(organization_id)]
        return await self._list(filters, NEWEST_FIRST, limit, use_cache)


class ZoomSessionsService(CollectionService):
    """Live sessions, ordered by session date."""

    collection = COLLECTION_ZOOM_SESSIONS
    default_order = Ordering("date", SortDirection.DESC)
    status_order = Ordering("date")
    scoped_accessors = (*CollectionService.scoped_accessors, "get_upcoming")

    async def get_upcoming(
        self,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List upcoming sessions, soonest first."""
        return await self.get_by_status(
            "upcoming", limit=limit, organization_id=organization_id, use_cache=use_cache
        )


class OrganizationsService(CollectionService):
    """Tenants themselves. Platform level, super-admin only."""

    collection = COLLECTION_ORGANIZATIONS
    tenant_scoped = False
    scoped_accessors = ("get_all", "get_by_status", "get_count")
    write_actions = {
        "create": Action.CREATE_ORGANIZATION,
        "update": Action.MANAGE_ORGANIZATION,
        "delete": Action.MANAGE_ORGANIZATION,
    }

    def validate_create(self, data: dict[str, Any]) -> dict[str, Any]:
        name = str(data.get("name") or "").strip()
        if not name:
            raise RecordValidationError("name", "Organization name is required.")
        return {**data, "name": name, "status": data.get("status") or "active"}

    async def get_organization(self, organization_id: str) -> Organization | None:
        """Fetch an organization as a model."""
        document = await self.get_by_id(organization_id)
        return Organization.from_document(document) if document else None

    async def delete(self, document_id: str) -> bool:
        """Delete an organization.

        Profiles and records of the organization are left in place; they
        must be removed or reassigned separately.
        """
        deleted = await super().delete(document_id)
        logger.warning(
            "Organization %s deleted; its users and records were not removed", document_id
        )
        return deleted

