# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Resolve an authenticated identity into an actor.

The actor's role and organization come from the profile document stored
under the identity's subject id. A missing or unreadable profile never
grants more than a student with no organization.
"""

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from src.infrastructure.firestore import DocumentNotFoundError, DocumentStore, DocumentStoreError
from src.infrastructure.firestore.collections import COLLECTION_USERS
from src.models.common import Role
from src.models.user import UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Acting user with resolved capabilities.

    Attributes:
        uid: Identity subject id.
        email: Identity email.
        name: Display name.
        role: Normalised role.
        organization_id: Organization the actor belongs to.
        has_profile: False when no profile was found for the identity.
    """

    uid: str
    email: str | None = None
    name: str | None = None
    role: Role = Role.STUDENT
    organization_id: str | None = None
    has_profile: bool = True

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "Actor":
        """Build an actor from a loaded profile."""
        return cls(
            uid=profile.id,
            email=profile.email,
            name=profile.name,
            role=profile.role,
            organization_id=None if profile.is_super_admin else profile.organization_id,
        )

    @classmethod
    def least_privileged(cls, uid: str, email: str | None = None) -> "Actor":
        """Actor for an identity whose profile could not be loaded."""
        return cls(uid=uid, email=email, role=Role.STUDENT, organization_id=None, has_profile=False)

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        """Admin or super-admin."""
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    @property
    def is_organization_admin(self) -> bool:
        return self.role is Role.ADMIN and self.organization_id is not None

    @property
    def is_teacher(self) -> bool:
        return self.role is Role.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role is Role.STUDENT


class ProfileResolver:
    """Loads the profile linked to an identity.

    Example:
        resolver = ProfileResolver(store)
        actor = await resolver.resolve(session.uid, session.email)
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def load_profile(self, uid: str) -> UserProfile | None:
        """Load the profile stored under an identity id.

        Returns:
            The profile, or None when it does not exist.

        Raises:
            DocumentStoreError: If the profile cannot be read.
        """
        try:
            document = await self._store.get(COLLECTION_USERS, uid)
        except DocumentNotFoundError:
            return None
        return UserProfile.from_document(document)

    async def resolve(self, uid: str, email: str | None = None) -> Actor:
        """Resolve an identity into an actor, failing to least privilege.

        Args:
            uid: Identity subject id.
            email: Identity email.

        Returns:
            Actor built from the profile, or a least-privileged actor with
            ``has_profile=False`` when the profile is missing or unreadable.
        """
        try:
            profile = await self.load_profile(uid)
        except (DocumentStoreError, ValidationError) as e:
            logger.warning("Profile for %s unreadable, using least privilege: %s", uid, e)
            return Actor.least_privileged(uid, email)

        if profile is None:
            logger.info("No profile for identity %s", uid)
            return Actor.least_privileged(uid, email)

        return Actor.from_profile(profile)
