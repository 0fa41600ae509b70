# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the capability policy and role normalisation."""

import pytest

from src.domains.auth.policy import Action, PermissionDeniedError, Resource, can, require
from src.domains.auth.resolver import Actor
from src.models.common import Role, StatusEnum
from src.models.user import UserProfile


class TestRoleNormalization:
    """Tests for Role.normalize / Role.parse."""

    @pytest.mark.parametrize("value", ["admin", "Admin", "ADMIN", " admin "])
    def test_admin_casings_resolve_to_admin(self, value: str) -> None:
        """Test that every casing resolves to the same role."""
        assert Role.normalize(value) is Role.ADMIN

    @pytest.mark.parametrize("value", ["superAdmin", "superadmin", "SUPERADMIN", "SuperAdmin"])
    def test_super_admin_casings(self, value: str) -> None:
        assert Role.normalize(value) is Role.SUPER_ADMIN

    @pytest.mark.parametrize("value", [None, "", "janitor", 42])
    def test_unknown_values_fall_back_to_student(self, value: object) -> None:
        """Test least-privilege fallback."""
        assert Role.normalize(value) is Role.STUDENT

    def test_normalize_is_idempotent(self) -> None:
        """Test that normalising a normalised role changes nothing."""
        for role in Role:
            assert Role.normalize(Role.normalize(role.value)) is role

    def test_parse_rejects_unknown(self) -> None:
        with pytest.raises(ValueError):
            Role.parse("janitor")

    def test_stored_variants_start_with_canonical(self) -> None:
        """Test that the canonical value leads the stored casings."""
        variants = Role.SUPER_ADMIN.stored_variants()

        assert variants[0] == "superAdmin"
        assert "superadmin" in variants
        assert len(variants) == len(set(variants))

    def test_same_capabilities_for_every_casing(self) -> None:
        """Test that profiles with differently cased roles get equal capabilities."""
        resource = Resource(organization_id="org-1", role=Role.STUDENT)
        decisions = set()
        for stored in ("admin", "Admin", "ADMIN"):
            profile = UserProfile.from_document({"id": "u1", "role": stored, "organizationId": "org-1"})
            actor = Actor.from_profile(profile)
            decisions.add(tuple(can(actor, action, resource) for action in Action))

        assert len(decisions) == 1

    def test_status_parse(self) -> None:
        assert StatusEnum.parse("Active") is StatusEnum.ACTIVE
        with pytest.raises(ValueError):
            StatusEnum.parse("archived")


class TestCan:
    """Tests for can()."""

    def test_super_admin_may_do_everything(self, super_admin: Actor) -> None:
        for action in Action:
            assert can(super_admin, action, Resource(organization_id="org-2"))

    def test_organizations_are_super_admin_only(self, org1_admin: Actor) -> None:
        """Test that admins cannot list or create organizations."""
        assert not can(org1_admin, Action.LIST_ORGANIZATIONS)
        assert not can(org1_admin, Action.CREATE_ORGANIZATION)
        assert not can(org1_admin, Action.MANAGE_ORGANIZATION, Resource(organization_id="org-1"))

    @pytest.mark.parametrize(
        ("role", "allowed"),
        [(Role.ADMIN, True), (Role.TEACHER, True), (Role.STUDENT, True), (Role.SUPER_ADMIN, False)],
    )
    def test_admin_creatable_roles(self, org1_admin: Actor, role: Role, allowed: bool) -> None:
        assert can(org1_admin, Action.CREATE_USER, Resource(organization_id="org-1", role=role)) is allowed

    @pytest.mark.parametrize(
        ("role", "allowed"),
        [(Role.ADMIN, False), (Role.TEACHER, True), (Role.STUDENT, True)],
    )
    def test_teacher_creatable_roles(self, org1_teacher: Actor, role: Role, allowed: bool) -> None:
        assert can(org1_teacher, Action.CREATE_USER, Resource(organization_id="org-1", role=role)) is allowed

    def test_student_cannot_create_users(self, org1_student: Actor) -> None:
        assert not can(org1_student, Action.CREATE_USER, Resource(organization_id="org-1", role=Role.STUDENT))

    def test_cross_tenant_is_denied(self, org1_admin: Actor) -> None:
        """Test that nothing is allowed in another organization."""
        for action in Action:
            assert not can(org1_admin, action, Resource(organization_id="org-2", role=Role.STUDENT))

    def test_profile_maintenance_needs_admin(self, org1_admin: Actor, org1_teacher: Actor) -> None:
        resource = Resource(organization_id="org-1", role=Role.STUDENT, owner_id="student-1")

        for action in (Action.EDIT_USER, Action.DELETE_USER, Action.SET_PASSWORD):
            assert can(org1_admin, action, resource)
            assert not can(org1_teacher, action, resource)

    def test_students_cannot_edit_themselves(self, org1_student: Actor) -> None:
        resource = Resource(organization_id="org-1", role=Role.STUDENT, owner_id=org1_student.uid)

        assert not can(org1_student, Action.EDIT_USER, resource)

    def test_tenant_data_access(self, org1_teacher: Actor, org1_student: Actor) -> None:
        resource = Resource(organization_id="org-1")

        assert can(org1_student, Action.READ_TENANT_DATA, resource)
        assert not can(org1_student, Action.WRITE_TENANT_DATA, resource)
        assert can(org1_teacher, Action.WRITE_TENANT_DATA, resource)

    def test_actor_without_organization_may_do_nothing(self, unassigned_actor: Actor) -> None:
        for action in Action:
            assert not can(unassigned_actor, action, Resource(organization_id=None))

    def test_require_raises_with_action(self, org1_student: Actor) -> None:
        with pytest.raises(PermissionDeniedError) as exc_info:
            require(org1_student, Action.WRITE_TENANT_DATA, Resource(organization_id="org-1"))

        assert exc_info.value.action is Action.WRITE_TENANT_DATA
