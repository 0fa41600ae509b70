# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User profile service.

This module provides the UsersService that handles:
- Profile listing by tenant, role and status
- Profile creation and updates with structural validation
- Role normalisation of documents read from the store

Profiles are keyed by the identity subject id once linked to a login;
profiles created without a login get a store-generated id. Passwords are
never stored on a profile.

Example:
    >>> users = UsersService(store, cache)
    >>> students = await users.get_by_role("student", organization_id="org-1")
    >>> await users.update(user_id, {"role": "teacher"})
"""

import logging
from typing import Any

from src.domains.auth.policy import Action
from src.domains.tenancy.collections import (
    CollectionService,
    RecordNotFoundError,
    RecordValidationError,
)
from src.infrastructure.firestore import DELETE_FIELD, DocumentNotFoundError
from src.infrastructure.firestore.collections import COLLECTION_USERS
from src.models.common import Role, StatusEnum
from src.models.query import ORGANIZATION_FIELD, Filter
from src.models.user import (
    CLASS_FIELD,
    LEGACY_CLASS_FIELD,
    ROLE_FIELD,
    UserProfile,
    profile_invariant_violation,
)

logger = logging.getLogger(__name__)

# Fields that never reach a profile document
SECRET_FIELDS = ("password", "confirmPassword")


class ProfileValidationError(RecordValidationError):
    """Raised when a profile violates a structural invariant."""

    pass


class UsersService(CollectionService):
    """Service for user profiles.

    Roles are normalised on every read. Role, class and organization
    invariants are checked before every write; an update touching them
    reads the current profile first.

    Example:
        >>> service = UsersService(store, cache)
        >>> user_id = await service.create(
        ...     {"email": "a@b.test", "role": "student", "classIds": ["c1"],
        ...      "organizationId": "org-1"}
        ... )
    """

    collection = COLLECTION_USERS
    scoped_accessors = (*CollectionService.scoped_accessors, "get_by_role")
    write_actions = {
        "create": Action.CREATE_USER,
        "update": Action.EDIT_USER,
        "delete": Action.DELETE_USER,
    }

    def _prepare(self, document: dict[str, Any]) -> dict[str, Any]:
        prepared = dict(document)
        prepared[ROLE_FIELD] = Role.normalize(document.get(ROLE_FIELD)).value
        if not prepared.get(CLASS_FIELD) and prepared.get(LEGACY_CLASS_FIELD):
            prepared[CLASS_FIELD] = list(prepared[LEGACY_CLASS_FIELD])
        return prepared

    # ========== Reads ==========

    async def get_by_role(
        self,
        role: str | Role,
        limit: int | None = None,
        organization_id: str | None = None,
        use_cache: bool = True,
    ) -> list[dict[str, Any]]:
        """List profiles with a role.

        The query always carries an equality filter on the canonical role,
        the shape backend security rules match. Profiles stored with a
        legacy casing are found only after
        ReconciliationService.normalize_stored_roles has rewritten them.
        An unknown or empty role returns no profiles instead of an
        unfiltered list.

        Args:
            role: Role in any casing.
            limit: Maximum profiles; None applies the default cap.
            organization_id: Tenant filter; None lists all tenants.
            use_cache: Read from the cache when possible.

        Returns:
            Matching profiles.
        """
        try:
            canonical = Role.parse(role)
        except ValueError:
            logger.warning("Refusing role query for unknown role %r", role)
            return []

        filters = [Filter.eq(ROLE_FIELD, canonical.value), *self._tenant_filters(organization_id)]
        return await self._list(filters, None, limit, use_cache)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Fetch a profile as a model."""
        document = await self.get_by_id(user_id)
        return UserProfile.from_document(document) if document else None

    # ========== Validation ==========

    @staticmethod
    def _normalize_input(data: dict[str, Any]) -> dict[str, Any]:
        """Canonicalise role, status and class fields of incoming data.

        Raises:
            ProfileValidationError: If role or status is unknown.
        """
        payload = {key: value for key, value in data.items() if key not in SECRET_FIELDS}

        if ROLE_FIELD in payload:
            try:
                payload[ROLE_FIELD] = Role.parse(payload[ROLE_FIELD]).value
            except ValueError as e:
                raise ProfileValidationError(ROLE_FIELD, "Please select a valid role.") from e

        if "status" in payload:
            try:
                payload["status"] = StatusEnum.parse(payload["status"]).value
            except ValueError as e:
                raise ProfileValidationError("status", "Please select a valid status.") from e

        if LEGACY_CLASS_FIELD in payload and CLASS_FIELD not in payload:
            payload[CLASS_FIELD] = payload.pop(LEGACY_CLASS_FIELD)

        if CLASS_FIELD in payload:
            payload[CLASS_FIELD] = list(payload[CLASS_FIELD] or [])

        return payload

    @staticmethod
    def _check_invariants(role: Role, organization_id: str | None, class_ids: list[str]) -> None:
        violation = profile_invariant_violation(role, organization_id, class_ids)
        if violation is not None:
            field, message = violation
            raise ProfileValidationError(field, message)

    def validate_create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Validate a new profile.

        Raises:
            ProfileValidationError: If the profile breaks an invariant.
        """
        payload = self._normalize_input(data)
        payload.setdefault(ROLE_FIELD, Role.STUDENT.value)
        payload.setdefault("status", StatusEnum.ACTIVE.value)
        payload.setdefault("phone", "")

        role = Role(payload[ROLE_FIELD])
        class_ids = payload.get(CLASS_FIELD) or []
        self._check_invariants(role, payload.get(ORGANIZATION_FIELD), class_ids)

        if role is Role.STUDENT:
            payload[CLASS_FIELD] = class_ids
        else:
            payload.pop(CLASS_FIELD, None)
        if not role.is_tenant_member:
            payload[ORGANIZATION_FIELD] = None
        return payload

    async def _validate_update(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        payload = self._normalize_input(data)
        if not {ROLE_FIELD, CLASS_FIELD, ORGANIZATION_FIELD} & payload.keys():
            return payload

        try:
            current = await self._store.get(self.collection, user_id)
        except DocumentNotFoundError as e:
            raise RecordNotFoundError(f"{self.collection}/{user_id} not found") from e
        return self._merge_invariants(current, payload)

    def _merge_invariants(self, current: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
        """Check the profile that results from merging payload into current."""
        current_profile = UserProfile.from_document(current)
        role = Role(payload[ROLE_FIELD]) if ROLE_FIELD in payload else current_profile.role
        organization_id = payload.get(ORGANIZATION_FIELD, current_profile.organization_id)

        if CLASS_FIELD in payload:
            class_ids = payload[CLASS_FIELD]
        elif role is not Role.STUDENT:
            class_ids = []
        else:
            class_ids = current_profile.class_ids

        self._check_invariants(role, organization_id, class_ids)

        # Leaving the student role drops class memberships
        if role is not Role.STUDENT:
            if current.get(CLASS_FIELD) or CLASS_FIELD in payload:
                payload[CLASS_FIELD] = DELETE_FIELD
            if current.get(LEGACY_CLASS_FIELD):
                payload[LEGACY_CLASS_FIELD] = DELETE_FIELD
        return payload

    # ========== Writes ==========

    async def update(self, document_id: str, data: dict[str, Any]) -> bool:
        """Partially update a profile.

        Raises:
            ProfileValidationError: If the result would break an invariant.
            RecordNotFoundError: If the profile does not exist.
        """
        payload = await self._validate_update(document_id, data)
        return await super().update(document_id, payload)

    async def upsert(self, user_id: str, data: dict[str, Any]) -> str:
        """Create or merge a profile under a known identity id.

        Used when the identity already exists (server-side creation,
        repairs), so the write must not fail on an existing document.
        A new profile gets the creation defaults; an existing one keeps
        the fields the data does not mention.

        Returns:
            The profile id.

        Raises:
            ProfileValidationError: If the resulting profile would break
                an invariant.
        """
        try:
            current = await self._store.get(self.collection, user_id)
        except DocumentNotFoundError:
            current = None

        if current is None:
            payload = self.validate_create(data)
        else:
            payload = self._merge_invariants(current, self._normalize_input(data))
        try:
            await self._store.set(self.collection, user_id, payload, merge=True)
        finally:
            await self._cache.invalidate(self.collection)

        logger.info("Upserted %s/%s", self.collection, user_id)
        return user_id
