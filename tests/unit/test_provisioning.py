# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the user provisioning workflow.

The identity backend is the httpx MockTransport fake, so every test can
assert exactly which provider calls were made.
"""

import pytest
import pytest_asyncio
from pydantic import SecretStr

from src.core.config.settings import Settings
from src.domains.auth import AuthSession, PermissionDeniedError, ProfileResolver
from src.domains.auth.resolver import Actor
from src.domains.provisioning import (
    OrphanedIdentityError,
    ProvisioningConflictError,
    ProvisioningValidationError,
    UserProvisioningService,
)
from src.domains.tenancy.scope import DataAccess
from src.infrastructure.firestore import DocumentStoreError
from src.infrastructure.identity import IdentityClientRegistry, ProvisioningFunctionClient
from src.models.provisioning import (
    OrganizationProvisionRequest,
    ProvisioningState,
    UserProvisionRequest,
)
from tests.fakes import FakeDocumentStore, FakeIdentityBackend


@pytest.fixture
def provisioning(
    data: DataAccess,
    seeded_store: FakeDocumentStore,
    identities: IdentityClientRegistry,
    settings: Settings,
) -> UserProvisioningService:
    """Provide the service on the secondary-client path."""
    return UserProvisioningService(data.users, data.organizations, identities, seeded_store, settings)


def student_request(**overrides: object) -> UserProvisionRequest:
    fields = {
        "email": "new.student@org1.test",
        "name": "New Student",
        "role": "student",
        "class_ids": ["batch-1"],
        "password": SecretStr("secret1"),
    }
    fields.update(overrides)
    return UserProvisionRequest(**fields)


class TestValidation:
    """Tests for rejections before any network call."""

    @pytest.mark.asyncio
    async def test_short_password_makes_no_calls(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that a five-character password is rejected locally."""
        with pytest.raises(ProvisioningValidationError) as exc_info:
            await provisioning.provision(student_request(password=SecretStr("abc12")), org1_admin)

        assert exc_info.value.field == "password"
        assert identity_backend.requests == []
        assert seeded_store.calls_to("create") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"email": "not-an-email"}, "email"),
            ({"role": "janitor"}, "role"),
            ({"status": "archived"}, "status"),
            ({"class_ids": []}, "classIds"),
            ({"password": None}, "password"),
            ({"organization_id": "org-2"}, "organizationId"),
        ],
    )
    async def test_invalid_fields(
        self,
        provisioning: UserProvisioningService,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
        overrides: dict,
        field: str,
    ) -> None:
        """Test that each invalid field is reported against itself."""
        with pytest.raises(ProvisioningValidationError) as exc_info:
            await provisioning.provision(student_request(**overrides), org1_admin)

        assert exc_info.value.field == field
        assert identity_backend.requests == []

    @pytest.mark.asyncio
    async def test_teacher_cannot_create_admin(
        self,
        provisioning: UserProvisioningService,
        identity_backend: FakeIdentityBackend,
        org1_teacher: Actor,
    ) -> None:
        request = UserProvisionRequest(email="boss@org1.test", role="admin", password=SecretStr("secret1"))

        with pytest.raises(PermissionDeniedError):
            await provisioning.provision(request, org1_teacher)

        assert identity_backend.requests == []

    @pytest.mark.asyncio
    async def test_admin_cannot_create_super_admin(
        self,
        provisioning: UserProvisioningService,
        org1_admin: Actor,
    ) -> None:
        """Test that a permission error wins over the organization invariant."""
        request = UserProvisionRequest(email="root2@org1.test", role="superAdmin", password=SecretStr("secret1"))

        with pytest.raises(PermissionDeniedError):
            await provisioning.provision(request, org1_admin)


class TestSecondaryClientPath:
    """Tests for provisioning with a login through the secondary client."""

    @pytest.mark.asyncio
    async def test_profile_id_equals_identity_id(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test the linked profile is stored under the new identity id."""
        result = await provisioning.provision(student_request(), org1_admin)

        identity_id = identity_backend.accounts["new.student@org1.test"]["uid"]
        assert result.user_id == identity_id
        assert result.identity_linked
        assert result.state is ProvisioningState.DONE
        assert result.completed_at is not None
        assert result.history == [
            ProvisioningState.VALIDATING,
            ProvisioningState.IDENTITY_CREATING,
            ProvisioningState.IDENTITY_CREATED,
            ProvisioningState.PROFILE_CREATING,
            ProvisioningState.DONE,
        ]

        profile = seeded_store.document("users", identity_id)
        assert profile["organizationId"] == "org-1"
        assert profile["role"] == "student"
        assert profile["classIds"] == ["batch-1"]
        assert "password" not in profile
        assert identity_backend.accounts["new.student@org1.test"]["displayName"] == "New Student"

    @pytest.mark.asyncio
    async def test_acting_session_is_untouched(
        self,
        provisioning: UserProvisioningService,
        identities: IdentityClientRegistry,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that the admin stays signed in and the secondary client is signed out."""
        identity_backend.add_account("admin@org1.test", "secret1", uid="admin-1")
        await identities.default().sign_in("admin@org1.test", "secret1")

        await provisioning.provision(student_request(), org1_admin)

        assert identities.default().current_user().uid == "admin-1"
        assert identities.get_or_create("temp-user-creation").current_user() is None

    @pytest.mark.asyncio
    async def test_member_is_pinned_to_own_organization(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        org1_teacher: Actor,
    ) -> None:
        result = await provisioning.provision(student_request(organization_id=None), org1_teacher)

        assert seeded_store.document("users", result.user_id)["organizationId"] == "org-1"

    @pytest.mark.asyncio
    async def test_super_admin_chooses_organization(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        super_admin: Actor,
    ) -> None:
        request = UserProvisionRequest(
            email="teacher@org2.test",
            role="Teacher",
            organization_id="org-2",
            password=SecretStr("secret1"),
        )

        result = await provisioning.provision(request, super_admin)

        profile = seeded_store.document("users", result.user_id)
        assert profile["organizationId"] == "org-2"
        assert profile["role"] == "teacher"
        assert profile["name"] == "teacher"

    @pytest.mark.asyncio
    async def test_existing_email_is_a_conflict(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that a taken email aborts without writing a profile."""
        identity_backend.add_account("new.student@org1.test", "other-password")

        with pytest.raises(ProvisioningConflictError) as exc_info:
            await provisioning.provision(student_request(), org1_admin)

        assert exc_info.value.email == "new.student@org1.test"
        assert "profile repair" in exc_info.value.message
        assert seeded_store.calls_to("create", "users") == 0

    @pytest.mark.asyncio
    async def test_profile_failure_records_orphan(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that a failed profile write leaves a reconciliation marker."""
        seeded_store.fail("create", "users", DocumentStoreError("unavailable", "users"))

        with pytest.raises(OrphanedIdentityError) as exc_info:
            await provisioning.provision(student_request(), org1_admin)

        identity_id = identity_backend.accounts["new.student@org1.test"]["uid"]
        assert exc_info.value.identity_id == identity_id
        assert identity_id in exc_info.value.message
        marker = seeded_store.document("pendingReconciliations", exc_info.value.marker_id)
        assert marker["identityId"] == identity_id
        assert marker["status"] == "pending"
        assert marker["profile"]["classIds"] == ["batch-1"]

    @pytest.mark.asyncio
    async def test_orphan_reported_when_marker_fails(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        org1_admin: Actor,
    ) -> None:
        seeded_store.fail("create", "users", DocumentStoreError("unavailable", "users"))
        seeded_store.fail("create", "pendingReconciliations", DocumentStoreError("unavailable"))

        with pytest.raises(OrphanedIdentityError) as exc_info:
            await provisioning.provision(student_request(), org1_admin)

        assert exc_info.value.marker_id is None


class TestProfileOnly:
    """Tests for provisioning without a password."""

    @pytest.mark.asyncio
    async def test_no_password_creates_profile_only(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that no identity call is made without a password."""
        request = UserProvisionRequest(email="t2@org1.test", name="Second Teacher", role="teacher")

        result = await provisioning.provision(request, org1_admin)

        assert not result.identity_linked
        assert result.state is ProvisioningState.DONE
        assert identity_backend.requests == []
        assert seeded_store.document("users", result.user_id)["name"] == "Second Teacher"


class TestFunctionPath:
    """Tests for provisioning through the createUser function."""

    @pytest_asyncio.fixture
    async def session(
        self,
        identities: IdentityClientRegistry,
        identity_backend: FakeIdentityBackend,
        seeded_store: FakeDocumentStore,
    ) -> AuthSession:
        identity_backend.add_account("admin@org1.test", "secret1", uid="admin-1")
        session = AuthSession(identities.default(), ProfileResolver(seeded_store))
        await session.sign_in("admin@org1.test", "secret1")
        return session

    @pytest.fixture
    def function_provisioning(
        self,
        data: DataAccess,
        seeded_store: FakeDocumentStore,
        identities: IdentityClientRegistry,
        identity_backend: FakeIdentityBackend,
        settings: Settings,
        session: AuthSession,
    ) -> UserProvisioningService:
        settings.provisioning.use_server_function = True
        functions = ProvisioningFunctionClient(settings, identity_backend.client())
        return UserProvisioningService(
            data.users,
            data.organizations,
            identities,
            seeded_store,
            settings,
            functions=functions,
            session=session,
        )

    @pytest.mark.asyncio
    async def test_function_creates_identity_and_profile_is_merged(
        self,
        function_provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test the payload and the merge over the function's partial profile."""
        identity_backend.function_responses["createUser"] = (200, {"result": {"uid": "fn-1"}})
        seeded_store.seed("users", "fn-1", {"email": "new.student@org1.test", "createdBy": "admin-1"})

        result = await function_provisioning.provision(student_request(), org1_admin)

        assert result.user_id == "fn-1"
        assert result.identity_linked
        body = identity_backend.bodies("createUser")[0]["data"]
        assert body["batchIds"] == ["batch-1"]
        assert body["role"] == "student"
        assert body["password"] == "secret1"
        profile = seeded_store.document("users", "fn-1")
        assert profile["createdBy"] == "admin-1"
        assert profile["organizationId"] == "org-1"
        assert identity_backend.calls_to("accounts:signUp") == 0

    @pytest.mark.asyncio
    async def test_unavailable_function_falls_back_to_profile_only(
        self,
        function_provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        org1_admin: Actor,
    ) -> None:
        """Test the profile-only fallback with a warning."""
        result = await function_provisioning.provision(student_request(), org1_admin)

        assert not result.identity_linked
        assert result.state is ProvisioningState.DONE_WITH_WARNING
        assert result.warning
        assert ProvisioningState.IDENTITY_FAILED in result.history
        assert seeded_store.document("users", result.user_id)["email"] == "new.student@org1.test"

    @pytest.mark.asyncio
    async def test_function_permission_error(
        self,
        function_provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        identity_backend.function_responses["createUser"] = (
            403,
            {"error": {"status": "PERMISSION_DENIED", "message": "Admins only"}},
        )

        with pytest.raises(PermissionDeniedError):
            await function_provisioning.provision(student_request(), org1_admin)

        assert seeded_store.calls_to("create", "users") == 0

    @pytest.mark.asyncio
    async def test_function_conflict(
        self,
        function_provisioning: UserProvisioningService,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        identity_backend.function_responses["createUser"] = (
            500,
            {"error": {"status": "INTERNAL", "message": "The email address is already in use / already exists"}},
        )

        with pytest.raises(ProvisioningConflictError):
            await function_provisioning.provision(student_request(), org1_admin)

    @pytest.mark.asyncio
    async def test_function_success_without_uid_records_marker(
        self,
        function_provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        identity_backend: FakeIdentityBackend,
        org1_admin: Actor,
    ) -> None:
        """Test that a login of unknown id is reported and recorded by email."""
        identity_backend.function_responses["createUser"] = (200, {"result": {}})

        with pytest.raises(OrphanedIdentityError) as exc_info:
            await function_provisioning.provision(student_request(), org1_admin)

        assert exc_info.value.identity_id is None
        assert "new.student@org1.test" in exc_info.value.message
        marker = seeded_store.document("pendingReconciliations", exc_info.value.marker_id)
        assert marker["identityId"] is None
        assert marker["email"] == "new.student@org1.test"
        assert marker["status"] == "pending"
        assert seeded_store.calls_to("create", "users") == 0


class TestOrganizationProvisioning:
    """Tests for provision_organization."""

    @pytest.mark.asyncio
    async def test_creates_organization_and_admin(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        super_admin: Actor,
    ) -> None:
        request = OrganizationProvisionRequest(
            organization_name="  West College ",
            admin_email="admin@west.test",
            admin_name="West Admin",
            admin_password=SecretStr("secret1"),
        )

        result = await provisioning.provision_organization(request, super_admin)

        organization = seeded_store.document("organizations", result.organization_id)
        assert organization["name"] == "West College"
        admin = seeded_store.document("users", result.admin.user_id)
        assert admin["role"] == "admin"
        assert admin["organizationId"] == result.organization_id
        assert result.admin.identity_linked

    @pytest.mark.asyncio
    async def test_only_super_admin(
        self,
        provisioning: UserProvisioningService,
        org1_admin: Actor,
    ) -> None:
        request = OrganizationProvisionRequest(
            organization_name="Rogue",
            admin_email="admin@rogue.test",
            admin_password=SecretStr("secret1"),
        )

        with pytest.raises(PermissionDeniedError):
            await provisioning.provision_organization(request, org1_admin)

    @pytest.mark.asyncio
    async def test_admin_password_required(
        self,
        provisioning: UserProvisioningService,
        seeded_store: FakeDocumentStore,
        super_admin: Actor,
    ) -> None:
        """Test that nothing is created without an admin password."""
        request = OrganizationProvisionRequest(organization_name="West College", admin_email="admin@west.test")

        with pytest.raises(ProvisioningValidationError) as exc_info:
            await provisioning.provision_organization(request, super_admin)

        assert exc_info.value.field == "adminPassword"
        assert seeded_store.calls_to("create", "organizations") == 0
