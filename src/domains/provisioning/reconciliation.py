# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Reconciliation of identities and profiles.

Provisioning writes an identity first and its profile second. When the
second step fails the identity is orphaned; provisioning records a
pending reconciliation marker and these utilities repair the profile
later against the known identity id.

Also provides:
- linking a profile-only document to a login created afterwards
- read-only role inspection, and rewriting legacy role casings
- promoting a profile to super-admin, and bootstrapping the first one

Example:
    >>> service = ReconciliationService(store, users, identities, settings)
    >>> for marker in await service.list_pending():
    ...     await service.repair_profile(marker.identity_id, marker.profile)
"""

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from src.domains.auth.policy import Action, PermissionDeniedError
from src.domains.auth.resolver import Actor
from src.domains.tenancy.collections import RecordNotFoundError
from src.domains.user.service import ProfileValidationError, UsersService
from src.infrastructure.firestore import DocumentNotFoundError, DocumentStore
from src.infrastructure.firestore.collections import (
    COLLECTION_PENDING_RECONCILIATIONS,
    COLLECTION_USERS,
)
from src.infrastructure.identity import IdentityClientRegistry, IdentityError
from src.models.common import Role
from src.models.query import ORGANIZATION_FIELD, Filter, FilterOperator
from src.models.user import (
    CLASS_FIELD,
    EMAIL_PATTERN,
    LEGACY_CLASS_FIELD,
    ROLE_FIELD,
    UserProfile,
)
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = get_logger(__name__)

MARKER_PENDING = "pending"
MARKER_RESOLVED = "resolved"

BOOTSTRAP_CLIENT_NAME = "super-admin-bootstrap"


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    pass


class PendingReconciliation(BaseModel):
    """Record of an identity whose profile was not written.

    Attributes:
        id: Marker id.
        identity_id: Orphaned identity subject id, None when the backend
            did not report it.
        email: Identity email.
        profile: Profile data that should exist under the identity id.
        reason: Failure that interrupted provisioning.
        status: ``pending`` or ``resolved``.
    """

    id: str
    identity_id: str | None = Field(alias="identityId")
    email: str | None = None
    profile: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    status: str = MARKER_PENDING

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class RoleReport(BaseModel):
    """Read-only view of an identity's profile role.

    Attributes:
        identity_id: Inspected identity id.
        has_profile: Whether a profile exists.
        stored_role: Raw stored role value.
        resolved_role: Role the core resolves it to.
        organization_id: Stored organization.
        needs_normalization: Stored value differs from the canonical one.
    """

    identity_id: str
    has_profile: bool
    stored_role: Any = None
    resolved_role: Role = Role.STUDENT
    organization_id: str | None = None
    needs_normalization: bool = False


class PendingReconciliations:
    """Marker collection for orphaned identities."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def record(
        self,
        identity_id: str | None,
        email: str | None,
        profile: dict[str, Any],
        reason: str,
    ) -> str:
        """Persist a marker.

        Returns:
            The marker id.
        """
        marker_id = await self._store.create(
            COLLECTION_PENDING_RECONCILIATIONS,
            {
                "identityId": identity_id,
                "email": email,
                "profile": {key: value for key, value in profile.items() if key != "password"},
                "reason": reason,
                "status": MARKER_PENDING,
            },
        )
        logger.warning("reconciliation_marker_recorded", identity_id=identity_id, marker_id=marker_id)
        return marker_id

    async def list_pending(self, limit: int | None = None) -> list[PendingReconciliation]:
        documents = await self._store.query(
            COLLECTION_PENDING_RECONCILIATIONS,
            [Filter.eq("status", MARKER_PENDING)],
            limit=limit,
        )
        return [PendingReconciliation.model_validate(document) for document in documents]

    async def resolve_for_identity(self, identity_id: str) -> int:
        """Mark every pending marker of an identity resolved.

        Returns:
            Number of markers resolved.
        """
        documents = await self._store.query(
            COLLECTION_PENDING_RECONCILIATIONS,
            [Filter.eq("identityId", identity_id), Filter.eq("status", MARKER_PENDING)],
        )
        for document in documents:
            await self._store.update(
                COLLECTION_PENDING_RECONCILIATIONS,
                document["id"],
                {"status": MARKER_RESOLVED, "resolvedAt": self._store.server_timestamp()},
            )
        return len(documents)


class ReconciliationService:
    """Repairs and inspects profile/identity linkage.

    These are maintenance utilities: apart from promote_to_super_admin
    they carry no actor and must only be reachable by platform operators.
    """

    def __init__(
        self,
        store: DocumentStore,
        users: UsersService,
        identities: IdentityClientRegistry,
        settings: "Settings",
    ) -> None:
        self._store = store
        self._users = users
        self._identities = identities
        self._settings = settings
        self.markers = PendingReconciliations(store)

    async def list_pending(self) -> list[PendingReconciliation]:
        """List identities still waiting for a profile."""
        return await self.markers.list_pending()

    async def repair_profile(self, identity_id: str, profile: dict[str, Any]) -> str:
        """Create or complete the profile of a known identity.

        The profile is validated like any other profile and merged under
        the identity id; pending markers of the identity are resolved.

        Returns:
            The profile id (equal to ``identity_id``).
        """
        user_id = await self._users.upsert(identity_id, profile)
        resolved = await self.markers.resolve_for_identity(identity_id)
        logger.info("profile_repaired", identity_id=identity_id, markers_resolved=resolved)
        return user_id

    async def link_profile_to_identity(self, profile_id: str, identity_id: str) -> str:
        """Move a profile-only document under a login's identity id.

        Raises:
            RecordNotFoundError: If the profile does not exist.
            ReconciliationError: If a profile already exists at the identity id.

        Returns:
            The new profile id.
        """
        if profile_id == identity_id:
            return identity_id

        source = await self._users.get_by_id(profile_id)
        if source is None:
            raise RecordNotFoundError(f"users/{profile_id} not found")
        if await self._users.get_by_id(identity_id) is not None:
            raise ReconciliationError(f"A profile already exists for identity {identity_id}")

        data = {
            key: value
            for key, value in source.items()
            if key not in ("id", "createdAt", "updatedAt", LEGACY_CLASS_FIELD)
        }
        if data.get(ROLE_FIELD) != Role.STUDENT.value:
            data.pop(CLASS_FIELD, None)

        await self._users.create(data, document_id=identity_id)
        await self._users.delete(profile_id)
        await self.markers.resolve_for_identity(identity_id)
        logger.info("profile_linked", profile_id=profile_id, identity_id=identity_id)
        return identity_id

    async def inspect_role(self, identity_id: str) -> RoleReport:
        """Report how an identity's stored role resolves, without changes."""
        try:
            document = await self._store.get(COLLECTION_USERS, identity_id)
        except DocumentNotFoundError:
            return RoleReport(identity_id=identity_id, has_profile=False)

        stored = document.get(ROLE_FIELD)
        resolved = Role.normalize(stored)
        return RoleReport(
            identity_id=identity_id,
            has_profile=True,
            stored_role=stored,
            resolved_role=resolved,
            organization_id=document.get(ORGANIZATION_FIELD),
            needs_normalization=stored != resolved.value,
        )

    async def normalize_stored_roles(self, batch_size: int = 100) -> int:
        """Rewrite profiles whose stored role uses a legacy casing.

        Role queries filter on the canonical value, so a profile stored as
        ``"Admin"`` or ``"STUDENT"`` is invisible to them until rewritten.
        Profiles that break an invariant are skipped and logged; fix them
        with repair_profile.

        Returns:
            Number of profiles rewritten.
        """
        rewritten = 0
        for role in Role:
            legacy = [variant for variant in role.stored_variants() if variant != role.value]
            skipped: set[str] = set()
            while True:
                documents = await self._store.query(
                    COLLECTION_USERS,
                    [Filter(ROLE_FIELD, FilterOperator.IN, legacy)],
                    limit=batch_size,
                )
                pending = [document for document in documents if document["id"] not in skipped]
                if not pending:
                    break
                for document in pending:
                    try:
                        await self._users.update(document["id"], {ROLE_FIELD: role.value})
                    except ProfileValidationError as e:
                        skipped.add(document["id"])
                        logger.warning(
                            "role_normalization_skipped",
                            user_id=document["id"],
                            field=e.field,
                            error=str(e),
                        )
                        continue
                    rewritten += 1

        logger.info("roles_normalized", rewritten=rewritten)
        return rewritten

    async def promote_to_super_admin(self, actor: Actor, identity_id: str) -> None:
        """Make an existing profile a platform super-admin.

        Raises:
            PermissionDeniedError: Unless the actor is a super-admin.
            RecordNotFoundError: If the profile does not exist.
        """
        if not actor.is_super_admin:
            raise PermissionDeniedError(
                "Only platform administrators can promote super-admins",
                Action.MANAGE_ORGANIZATION,
            )
        await self._users.update(
            identity_id,
            {ROLE_FIELD: Role.SUPER_ADMIN.value, ORGANIZATION_FIELD: None},
        )
        logger.warning("super_admin_promoted", identity_id=identity_id, promoted_by=actor.uid)

    async def bootstrap_super_admin(self, email: str, password: str, name: str = "") -> UserProfile:
        """Create the first platform super-admin (login and profile).

        Raises:
            ReconciliationError: If the input is invalid or the login
                cannot be created.
        """
        email = email.strip()
        if not EMAIL_PATTERN.match(email):
            raise ReconciliationError("Please enter a valid email address.")
        if len(password or "") < self._settings.provisioning.min_password_length:
            raise ReconciliationError(
                "Password must be at least "
                f"{self._settings.provisioning.min_password_length} characters long."
            )

        name = name.strip() or email.split("@")[0]
        client = self._identities.get_or_create(BOOTSTRAP_CLIENT_NAME)
        try:
            identity = await client.create_account(email, password)
            try:
                await client.update_display_name(name)
            except IdentityError as e:
                logger.warning("display_name_update_failed", identity_id=identity.uid, error=str(e))
        except IdentityError as e:
            raise ReconciliationError(f"Could not create the super-admin login: {e.message}") from e
        finally:
            await client.sign_out()

        profile = {
            "email": email,
            "name": name,
            "phone": "",
            ROLE_FIELD: Role.SUPER_ADMIN.value,
            "status": "active",
            ORGANIZATION_FIELD: None,
        }
        await self._users.upsert(identity.uid, profile)
        logger.warning("super_admin_bootstrapped", identity_id=identity.uid)
        return UserProfile.from_document({"id": identity.uid, **profile})
