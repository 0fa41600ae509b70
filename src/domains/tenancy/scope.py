# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant scopes over the collection services.

DataAccess.for_tenant() and DataAccess.for_actor() return a TenantScope.
Every collection reached through a scope has its ``organization_id``
argument bound by the scope, so callers cannot forget or widen the
tenant filter:

- an all-tenant scope (super-admin) passes ``organization_id`` through;
- a tenant scope forces its own organization and rejects any other;
- a denied scope (actor without organization) reads nothing and writes
  nothing.

Example:
    >>> data = DataAccess(store, cache)
    >>> scope = data.for_actor(actor)
    >>> students = await scope.users.get_by_role("student")
    >>> course_id = await scope.courses.create({"name": "Algebra"})
"""

import inspect
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from src.domains.auth.policy import Action, PermissionDeniedError, Resource, require
from src.domains.auth.resolver import Actor
from src.domains.tenancy.collections import (
    BatchesService,
    BlogPostsService,
    CollectionService,
    CoursesService,
    OrganizationsService,
    PaymentsService,
    RecordingsService,
    RecordNotFoundError,
    TasksService,
    ZoomSessionsService,
)
from src.domains.user.service import UsersService
from src.infrastructure.cache import QueryCache
from src.infrastructure.firestore import DocumentStore
from src.models.common import Role
from src.models.organization import Organization
from src.models.query import ORGANIZATION_FIELD
from src.models.user import ROLE_FIELD

logger = logging.getLogger(__name__)

ORGANIZATION_ARGUMENT = "organization_id"


class ScopeMode(str, Enum):
    """Visibility of a scope."""

    ALL_TENANTS = "all_tenants"
    TENANT = "tenant"
    DENIED = "denied"


class ScopedCollection:
    """One collection service seen through a scope.

    Read accessors declared in the service's ``scoped_accessors`` are
    available as attributes; anything else raises AttributeError.
    """

    def __init__(self, service: CollectionService, scope: "TenantScope") -> None:
        self._service = service
        self._scope = scope

    @property
    def collection(self) -> str:
        return self._service.collection

    @property
    def _is_users(self) -> bool:
        return isinstance(self._service, UsersService)

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_") or name not in self._service.scoped_accessors:
            raise AttributeError(
                f"{type(self._service).__name__}.{name} is not available through a tenant scope"
            )
        return self._bind(name, getattr(self._service, name))

    def _bind(self, name: str, accessor: Callable[..., Any]) -> Callable[..., Any]:
        scope = self._scope
        signature = inspect.signature(accessor)
        if ORGANIZATION_ARGUMENT not in signature.parameters:
            raise TypeError(f"Scoped accessor {name} does not accept {ORGANIZATION_ARGUMENT}")

        async def scoped(*args: Any, **kwargs: Any) -> Any:
            arguments = signature.bind_partial(*args, **kwargs)

            if scope.mode is ScopeMode.DENIED:
                return 0 if name == "get_count" else []

            if scope.mode is ScopeMode.TENANT:
                requested = arguments.arguments.get(ORGANIZATION_ARGUMENT)
                if requested is not None and requested != scope.organization_id:
                    raise PermissionDeniedError(
                        "Records of another organization are not accessible",
                        Action.READ_TENANT_DATA,
                    )
                arguments.arguments[ORGANIZATION_ARGUMENT] = scope.organization_id

            return await accessor(*arguments.args, **arguments.kwargs)

        scoped.__name__ = name
        scoped.__doc__ = accessor.__doc__
        return scoped

    # ========== Single records ==========

    def _visible(self, document: dict[str, Any]) -> bool:
        if self._scope.mode is ScopeMode.ALL_TENANTS:
            return True
        if self._scope.mode is ScopeMode.DENIED:
            return False
        if not self._service.tenant_scoped:
            return False
        return document.get(ORGANIZATION_FIELD) == self._scope.organization_id

    async def get_by_id(self, document_id: str) -> dict[str, Any] | None:
        """Fetch a record; records of other tenants read as missing."""
        if self._scope.mode is ScopeMode.DENIED:
            return None
        document = await self._service.get_by_id(document_id)
        if document is None or not self._visible(document):
            return None
        return document

    async def _require_visible(self, document_id: str) -> dict[str, Any]:
        document = await self._service.get_by_id(document_id)
        if document is None or not self._visible(document):
            raise RecordNotFoundError(f"{self._service.collection}/{document_id} not found")
        return document

    def _authorize(
        self,
        operation: str,
        organization_id: str | None,
        role: Any = None,
        owner_id: str | None = None,
    ) -> None:
        actor = self._scope.actor
        if actor is None:
            return
        resource = Resource(
            organization_id=organization_id,
            role=Role.normalize(role) if role is not None else None,
            owner_id=owner_id,
        )
        require(actor, self._service.write_actions[operation], resource)

    def _check_writable(self) -> None:
        if self._scope.mode is ScopeMode.DENIED:
            raise PermissionDeniedError("This account is not assigned to an organization")

    async def create(self, data: dict[str, Any], document_id: str | None = None) -> str:
        """Create a record in the scope's organization.

        Raises:
            PermissionDeniedError: If the scope or policy forbids the write.
        """
        self._check_writable()
        payload = dict(data)

        if self._scope.mode is ScopeMode.TENANT and self._service.tenant_scoped:
            requested = payload.get(ORGANIZATION_FIELD)
            if requested and requested != self._scope.organization_id:
                raise PermissionDeniedError(
                    "Records cannot be created for another organization",
                    self._service.write_actions["create"],
                )
            payload[ORGANIZATION_FIELD] = self._scope.organization_id

        organization_id = (
            payload.get(ORGANIZATION_FIELD) if self._service.tenant_scoped else None
        )
        role = payload.get(ROLE_FIELD, Role.STUDENT) if self._is_users else None
        self._authorize("create", organization_id, role=role)
        return await self._service.create(payload, document_id)

    async def update(self, document_id: str, data: dict[str, Any]) -> bool:
        """Update a record of the scope's organization.

        Raises:
            RecordNotFoundError: If the record is missing or belongs to
                another organization.
            PermissionDeniedError: If the write would move the record to
                another organization or the policy forbids it.
        """
        self._check_writable()
        current = await self._require_visible(document_id)

        if self._scope.mode is ScopeMode.TENANT and ORGANIZATION_FIELD in data:
            if data[ORGANIZATION_FIELD] != self._scope.organization_id:
                raise PermissionDeniedError(
                    "Records cannot be moved to another organization",
                    self._service.write_actions["update"],
                )

        self._authorize(
            "update",
            current.get(ORGANIZATION_FIELD) if self._service.tenant_scoped else None,
            role=current.get(ROLE_FIELD) if self._is_users else None,
            owner_id=document_id,
        )
        if self._is_users and ROLE_FIELD in data:
            # The new role must also be one the actor may assign
            self._authorize(
                "create",
                current.get(ORGANIZATION_FIELD),
                role=data[ROLE_FIELD],
            )
        return await self._service.update(document_id, data)

    async def delete(self, document_id: str) -> bool:
        """Delete a record of the scope's organization."""
        self._check_writable()
        current = await self._require_visible(document_id)
        self._authorize(
            "delete",
            current.get(ORGANIZATION_FIELD) if self._service.tenant_scoped else None,
            role=current.get(ROLE_FIELD) if self._is_users else None,
            owner_id=document_id,
        )
        return await self._service.delete(document_id)


class TenantScope:
    """Collections bound to one organization, all tenants, or nothing.

    Attributes:
        mode: Visibility of the scope.
        organization_id: Bound organization (tenant scopes only).
        actor: Actor the scope was built for, if any.
    """

    def __init__(
        self,
        data: "DataAccess",
        mode: ScopeMode,
        organization_id: str | None = None,
        actor: Actor | None = None,
    ) -> None:
        self._data = data
        self.mode = mode
        self.organization_id = organization_id
        self.actor = actor

    def _collection(self, service: CollectionService) -> ScopedCollection:
        return ScopedCollection(service, self)

    @property
    def users(self) -> ScopedCollection:
        return self._collection(self._data.users)

    @property
    def courses(self) -> ScopedCollection:
        return self._collection(self._data.courses)

    @property
    def batches(self) -> ScopedCollection:
        return self._collection(self._data.batches)

    @property
    def recordings(self) -> ScopedCollection:
        return self._collection(self._data.recordings)

    @property
    def payments(self) -> ScopedCollection:
        return self._collection(self._data.payments)

    @property
    def blog_posts(self) -> ScopedCollection:
        return self._collection(self._data.blog_posts)

    @property
    def tasks(self) -> ScopedCollection:
        return self._collection(self._data.tasks)

    @property
    def zoom_sessions(self) -> ScopedCollection:
        return self._collection(self._data.zoom_sessions)

    @property
    def organizations(self) -> ScopedCollection:
        """Organizations collection (all-tenant scopes only).

        Raises:
            PermissionDeniedError: For tenant and denied scopes.
        """
        if self.mode is not ScopeMode.ALL_TENANTS:
            raise PermissionDeniedError(
                "Only platform administrators can list organizations",
                Action.LIST_ORGANIZATIONS,
            )
        return self._collection(self._data.organizations)

    async def organization(self) -> Organization | None:
        """The scope's own organization."""
        if self.mode is not ScopeMode.TENANT or self.organization_id is None:
            return None
        return await self._data.organizations.get_organization(self.organization_id)


class DataAccess:
    """Entry point to tenant-scoped data.

    Holds one service per collection and hands out scopes.

    Example:
        >>> data = DataAccess(store, cache)
        >>> org_scope = data.for_tenant("org-1")
        >>> everything = data.for_tenant(None)
    """

    def __init__(self, store: DocumentStore, cache: QueryCache) -> None:
        """Initialize the services.

        Args:
            store: Document store.
            cache: Query cache shared by all services.
        """
        self.users = UsersService(store, cache)
        self.courses = CoursesService(store, cache)
        self.batches = BatchesService(store, cache)
        self.recordings = RecordingsService(store, cache)
        self.payments = PaymentsService(store, cache)
        self.blog_posts = BlogPostsService(store, cache)
        self.tasks = TasksService(store, cache)
        self.zoom_sessions = ZoomSessionsService(store, cache)
        self.organizations = OrganizationsService(store, cache)

    @property
    def services(self) -> dict[str, CollectionService]:
        """All collection services by collection name."""
        return {
            service.collection: service
            for service in (
                self.users,
                self.courses,
                self.batches,
                self.recordings,
                self.payments,
                self.blog_posts,
                self.tasks,
                self.zoom_sessions,
                self.organizations,
            )
        }

    def for_tenant(self, organization_id: str | None) -> TenantScope:
        """Scope bound to one organization; None means all tenants.

        The all-tenant scope carries no actor and no policy checks. It is
        meant for the super-admin path and for maintenance utilities.
        """
        if organization_id is None:
            return TenantScope(self, ScopeMode.ALL_TENANTS)
        return TenantScope(self, ScopeMode.TENANT, organization_id)

    def for_actor(self, actor: Actor) -> TenantScope:
        """Scope matching what an actor may see.

        Super-admins see all tenants, members see their organization and
        an actor without an organization sees nothing.
        """
        if actor.is_super_admin:
            return TenantScope(self, ScopeMode.ALL_TENANTS, actor=actor)
        if actor.organization_id:
            return TenantScope(self, ScopeMode.TENANT, actor.organization_id, actor=actor)

        logger.info("Actor %s has no organization; using a denied scope", actor.uid)
        return TenantScope(self, ScopeMode.DENIED, actor=actor)
