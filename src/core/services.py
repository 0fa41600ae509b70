# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Wiring of the LMS access core.

create_core_services() builds every adapter and domain service from the
settings and returns them together. The presentation layer holds one
CoreServices instance per process and closes it on shutdown.

Example:
    >>> services = await create_core_services(get_settings())
    >>> actor = await services.session.sign_in("admin@school.test", "secret1")
    >>> scope = services.data.for_actor(actor)
    >>> courses = await scope.courses.get_all()
    >>> await services.aclose()
"""

from dataclasses import dataclass

from src.core.config.settings import Settings
from src.domains.auth.password import PasswordService
from src.domains.auth.resolver import ProfileResolver
from src.domains.auth.session import AuthSession
from src.domains.auth.tokens import IdentityTokenVerifier
from src.domains.provisioning import ReconciliationService, UserProvisioningService
from src.domains.tenancy.scope import DataAccess
from src.infrastructure.cache import (
    CacheBackend,
    MemoryCacheBackend,
    QueryCache,
    RedisCacheBackend,
)
from src.infrastructure.firestore import DocumentStore, FirestoreDocumentStore
from src.infrastructure.identity import IdentityClientRegistry, ProvisioningFunctionClient
from src.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CoreServices:
    """Every service of the core, built from one Settings instance."""

    settings: Settings
    store: DocumentStore
    cache: QueryCache
    identities: IdentityClientRegistry
    functions: ProvisioningFunctionClient
    data: DataAccess
    resolver: ProfileResolver
    verifier: IdentityTokenVerifier
    session: AuthSession
    passwords: PasswordService
    provisioning: UserProvisioningService
    reconciliation: ReconciliationService

    async def aclose(self) -> None:
        """Close the cache, the store and every HTTP client."""
        await self.cache.close()
        await self.functions.aclose()
        await self.identities.aclose()
        await self.store.close()
        logger.info("core_services_closed")


async def create_cache_backend(settings: Settings) -> CacheBackend:
    """Create the configured cache backend.

    Raises:
        CacheError: If the Redis backend cannot connect.
    """
    if settings.cache.backend == "redis":
        backend = RedisCacheBackend(settings)
        await backend.connect()
        return backend
    return MemoryCacheBackend()


async def create_core_services(
    settings: Settings,
    store: DocumentStore | None = None,
    cache_backend: CacheBackend | None = None,
) -> CoreServices:
    """Build the core services.

    Args:
        settings: Application settings.
        store: Document store; defaults to Firestore for the configured project.
        cache_backend: Cache backend; defaults to the configured one.

    Returns:
        Connected services.
    """
    if store is None:
        store = FirestoreDocumentStore.from_settings(settings)
    if cache_backend is None:
        cache_backend = await create_cache_backend(settings)
    cache = QueryCache(cache_backend, ttl_seconds=settings.cache.ttl_seconds)

    identities = IdentityClientRegistry(settings)
    functions = ProvisioningFunctionClient(settings)
    data = DataAccess(store, cache)
    resolver = ProfileResolver(store)
    verifier = IdentityTokenVerifier(settings)
    session = AuthSession(identities.default(), resolver, verifier)

    services = CoreServices(
        settings=settings,
        store=store,
        cache=cache,
        identities=identities,
        functions=functions,
        data=data,
        resolver=resolver,
        verifier=verifier,
        session=session,
        passwords=PasswordService(
            functions, session, min_length=settings.provisioning.min_password_length
        ),
        provisioning=UserProvisioningService(
            data.users,
            data.organizations,
            identities,
            store,
            settings,
            functions=functions,
            session=session,
        ),
        reconciliation=ReconciliationService(store, data.users, identities, settings),
    )
    logger.info(
        "core_services_ready",
        project_id=settings.firebase.project_id,
        cache_backend=settings.cache.backend,
        cache_ttl_seconds=settings.cache.ttl_seconds,
    )
    return services
