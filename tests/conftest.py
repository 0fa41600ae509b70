# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across the unit tests:
- Settings pointing at a demo project
- An in-memory document store and a clock-driven query cache
- Actors of every role in two organizations
- A seeded two-tenant dataset (org-1, org-2)
"""

from typing import Any

import pytest
from pydantic import SecretStr

from src.core.config.settings import FirebaseSettings, ProvisioningSettings, Settings
from src.domains.auth.resolver import Actor
from src.domains.tenancy.scope import DataAccess
from src.infrastructure.cache import MemoryCacheBackend, QueryCache
from src.infrastructure.identity import IdentityClientRegistry
from src.models.common import Role
from tests.fakes import FakeClock, FakeDocumentStore, FakeIdentityBackend


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings() -> Settings:
    """Provide settings for a demo project."""
    return Settings(
        environment="development",
        firebase=FirebaseSettings(
            project_id="demo-lms",
            api_key=SecretStr("test-api-key"),
        ),
        provisioning=ProvisioningSettings(),
    )


# =============================================================================
# Store and Cache
# =============================================================================


@pytest.fixture
def store() -> FakeDocumentStore:
    """Provide an empty in-memory document store."""
    return FakeDocumentStore()


@pytest.fixture
def clock() -> FakeClock:
    """Provide a settable clock."""
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    """Provide a memory-backed query cache driven by the fake clock."""
    return QueryCache(MemoryCacheBackend(), ttl_seconds=300, clock=clock)


@pytest.fixture
def data(store: FakeDocumentStore, cache: QueryCache) -> DataAccess:
    """Provide the collection services over the fake store."""
    return DataAccess(store, cache)


# =============================================================================
# Identity Backend
# =============================================================================


@pytest.fixture
def identity_backend() -> FakeIdentityBackend:
    """Provide a fake Identity Toolkit / functions backend."""
    return FakeIdentityBackend()


@pytest.fixture
def identities(settings: Settings, identity_backend: FakeIdentityBackend) -> IdentityClientRegistry:
    """Provide an identity client registry talking to the fake backend."""
    return IdentityClientRegistry(settings, http_client=identity_backend.client())


# =============================================================================
# Actors
# =============================================================================


@pytest.fixture
def super_admin() -> Actor:
    return Actor(uid="super-1", email="root@platform.test", role=Role.SUPER_ADMIN)


@pytest.fixture
def org1_admin() -> Actor:
    return Actor(uid="admin-1", email="admin@org1.test", role=Role.ADMIN, organization_id="org-1")


@pytest.fixture
def org1_teacher() -> Actor:
    return Actor(uid="teacher-1", email="teacher@org1.test", role=Role.TEACHER, organization_id="org-1")


@pytest.fixture
def org1_student() -> Actor:
    return Actor(uid="student-1", email="student@org1.test", role=Role.STUDENT, organization_id="org-1")


@pytest.fixture
def org2_admin() -> Actor:
    return Actor(uid="admin-2", email="admin@org2.test", role=Role.ADMIN, organization_id="org-2")


@pytest.fixture
def unassigned_actor() -> Actor:
    return Actor.least_privileged("lost-1", "lost@nowhere.test")


# =============================================================================
# Seeded Dataset
# =============================================================================


def seed_tenants(store: FakeDocumentStore) -> None:
    """Seed two organizations with profiles and records."""
    store.seed("organizations", "org-1", {"name": "North Academy", "status": "active"})
    store.seed("organizations", "org-2", {"name": "South Institute", "status": "active"})

    profiles: dict[str, dict[str, Any]] = {
        "super-1": {"email": "root@platform.test", "role": "superAdmin", "organizationId": None},
        "admin-1": {"email": "admin@org1.test", "role": "Admin", "organizationId": "org-1"},
        "teacher-1": {"email": "teacher@org1.test", "role": "teacher", "organizationId": "org-1"},
        "student-1": {
            "email": "student@org1.test",
            "role": "STUDENT",
            "organizationId": "org-1",
            "batchIds": ["batch-1"],
        },
        "admin-2": {"email": "admin@org2.test", "role": "admin", "organizationId": "org-2"},
        "student-2": {
            "email": "student@org2.test",
            "role": "student",
            "organizationId": "org-2",
            "classIds": ["batch-9"],
        },
    }
    for user_id, profile in profiles.items():
        store.seed("users", user_id, {"name": user_id, "status": "active", **profile})

    for index in range(3):
        store.seed("courses", f"course-1{index}", {"name": f"Course {index}", "status": "active", "organizationId": "org-1"})
    for index in range(2):
        store.seed("courses", f"course-2{index}", {"name": f"Course {index}", "status": "active", "organizationId": "org-2"})

    store.seed("batches", "batch-1", {"name": "Morning", "status": "active", "organizationId": "org-1"})
    store.seed("batches", "batch-9", {"name": "Evening", "status": "active", "organizationId": "org-2"})
    store.seed("payments", "pay-1", {"userId": "student-1", "amount": 100, "organizationId": "org-1"})
    store.seed("payments", "pay-2", {"userId": "student-2", "amount": 80, "organizationId": "org-2"})


@pytest.fixture
def seeded_store(store: FakeDocumentStore) -> FakeDocumentStore:
    """Provide the store seeded with the two-tenant dataset."""
    seed_tenants(store)
    return store
