# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Capability policy.

Every capability check in the core goes through can() or require(). The
backend's security rules remain the authority; this policy decides what
the core attempts and what the presentation layer offers.

Rules:
    - A super-admin may do everything.
    - Organizations are listed, created and managed by super-admins only.
    - An admin creates admins, teachers and students in their own
      organization; a teacher creates teachers and students there.
    - Editing, deleting and resetting the password of a profile needs an
      admin of the same organization. Students and teachers cannot edit
      their own profiles.
    - Tenant data is readable by any member and writable by admins and
      teachers of the owning organization.
    - An actor without an organization may do nothing.

Example:
    >>> resource = Resource(organization_id="org-1", role=Role.STUDENT)
    >>> can(teacher, Action.CREATE_USER, resource)
    True
"""

import logging
from dataclasses import dataclass
from enum import Enum

from src.domains.auth.resolver import Actor
from src.models.common import Role

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when an actor may not perform an action.

    Attributes:
        message: Human-readable error description.
        action: The denied action, when known.
    """

    def __init__(self, message: str, action: "Action | None" = None) -> None:
        super().__init__(message)
        self.message = message
        self.action = action


class Action(str, Enum):
    """Actions subject to the policy."""

    LIST_ORGANIZATIONS = "list_organizations"
    CREATE_ORGANIZATION = "create_organization"
    MANAGE_ORGANIZATION = "manage_organization"
    CREATE_USER = "create_user"
    EDIT_USER = "edit_user"
    DELETE_USER = "delete_user"
    SET_PASSWORD = "set_password"
    READ_TENANT_DATA = "read_tenant_data"
    WRITE_TENANT_DATA = "write_tenant_data"


@dataclass(frozen=True)
class Resource:
    """Target of an action.

    Attributes:
        organization_id: Organization owning the target.
        role: Role of the target profile (user actions).
        owner_id: Id of the target profile (user actions).
    """

    organization_id: str | None = None
    role: Role | None = None
    owner_id: str | None = None


SUPER_ADMIN_ONLY = frozenset(
    {Action.LIST_ORGANIZATIONS, Action.CREATE_ORGANIZATION, Action.MANAGE_ORGANIZATION}
)

PROFILE_MAINTENANCE = frozenset({Action.EDIT_USER, Action.DELETE_USER, Action.SET_PASSWORD})

# Roles each creator may assign inside their own organization
CREATABLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.ADMIN: frozenset({Role.ADMIN, Role.TEACHER, Role.STUDENT}),
    Role.TEACHER: frozenset({Role.TEACHER, Role.STUDENT}),
    Role.STUDENT: frozenset(),
}


def can(actor: Actor, action: Action, resource: Resource | None = None) -> bool:
    """Decide whether an actor may perform an action.

    Args:
        actor: Acting user.
        action: Requested action.
        resource: Target of the action.

    Returns:
        True if allowed.
    """
    if actor.is_super_admin:
        return True

    if action in SUPER_ADMIN_ONLY:
        return False

    resource = resource or Resource()
    if actor.organization_id is None or resource.organization_id != actor.organization_id:
        return False

    if action is Action.CREATE_USER:
        target_role = resource.role or Role.STUDENT
        return target_role in CREATABLE_ROLES.get(actor.role, frozenset())

    if action in PROFILE_MAINTENANCE:
        return actor.is_organization_admin and resource.role is not Role.SUPER_ADMIN

    if action is Action.READ_TENANT_DATA:
        return True

    if action is Action.WRITE_TENANT_DATA:
        return actor.role in (Role.ADMIN, Role.TEACHER)

    return False


def require(actor: Actor, action: Action, resource: Resource | None = None) -> None:
    """Raise unless the actor may perform the action.

    Raises:
        PermissionDeniedError: If the policy denies the action.
    """
    if not can(actor, action, resource):
        logger.warning(
            "Denied %s for actor %s (role=%s, organization=%s)",
            action.value,
            actor.uid,
            actor.role.value,
            actor.organization_id,
        )
        raise PermissionDeniedError(
            f"You do not have permission to {action.value.replace('_', ' ')}",
            action,
        )
