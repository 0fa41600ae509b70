# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provisioning service for user profiles and logins.

This service creates a user profile, optionally together with a working
login. The two writes go to different systems without a shared
transaction, so the order is fixed: identity first, profile second, with
the profile stored under the identity's subject id.

The provisioning flow:
1. Validate the request locally (no network calls)
2. No password: create a profile-only document (store-generated id)
3. Password: create the login on a secondary identity client, sign that
   client out, then create the profile under the new identity id
4. Server function path (when enabled): create the login through
   ``createUser``; if the function is unavailable, fall back to a
   profile-only document with a warning

A profile write that fails after the identity was created leaves an
orphaned identity. It is recorded as a pending reconciliation marker and
reported with OrphanedIdentityError; nothing is rolled back.

Example:
    >>> service = UserProvisioningService(users, organizations, identities, store, settings)
    >>> result = await service.provision(request, actor)
    >>> result.identity_linked
    True
"""

from typing import TYPE_CHECKING, Any

from src.domains.auth.policy import Action, PermissionDeniedError, Resource, require
from src.domains.auth.resolver import Actor
from src.domains.auth.session import AuthSession
from src.domains.provisioning.reconciliation import PendingReconciliations
from src.domains.tenancy.collections import CollectionServiceError, OrganizationsService
from src.domains.user.service import UsersService
from src.infrastructure.firestore import DocumentStore, DocumentStoreError
from src.infrastructure.identity import (
    FunctionPermissionError,
    FunctionResultError,
    FunctionUnavailableError,
    IdentityClientRegistry,
    IdentityConflictError,
    IdentityError,
    ProvisioningFunctionClient,
)
from src.models.common import Role, StatusEnum
from src.models.provisioning import (
    OrganizationProvisioningResult,
    OrganizationProvisionRequest,
    ProvisioningResult,
    ProvisioningState,
    UserProvisionRequest,
)
from src.models.query import ORGANIZATION_FIELD
from src.models.user import CLASS_FIELD, EMAIL_PATTERN, profile_invariant_violation
from src.utils.datetime import utc_now
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.core.config.settings import Settings

logger = get_logger(__name__)

CONFLICT_REMEDIATION = (
    "An account with this email already exists. No profile was created. "
    "Link the existing identity id to a profile with the profile repair "
    "utility instead of creating a new login."
)

PROFILE_ONLY_WARNING = (
    "The login service is unavailable, so a profile was created without a "
    "login. This user cannot sign in until the profile is linked to a login."
)


class ProvisioningError(Exception):
    """Base exception for provisioning errors."""

    pass


class ProvisioningValidationError(ProvisioningError):
    """Raised when a request is rejected before any network call.

    Attributes:
        field: Offending form field.
        message: Human-readable error description.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class ProvisioningConflictError(ProvisioningError):
    """Raised when a login already exists for the email.

    Attributes:
        email: Conflicting email.
        message: Remediation text.
    """

    def __init__(self, email: str, message: str = CONFLICT_REMEDIATION) -> None:
        super().__init__(message)
        self.email = email
        self.message = message


class ProvisioningAbortedError(ProvisioningError):
    """Raised when provisioning stops without writing anything.

    Attributes:
        message: Human-readable error description.
        original_error: The failure that stopped provisioning.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class OrphanedIdentityError(ProvisioningError):
    """Raised when a login was created but its profile was not.

    Attributes:
        identity_id: Subject id of the orphaned login, None if unknown.
        marker_id: Pending reconciliation marker, None if it could not be saved.
        message: Operator-facing remediation text.
    """

    def __init__(self, identity_id: str | None, marker_id: str | None, email: str | None = None) -> None:
        if identity_id is None:
            message = (
                f"A login for {email} may have been created but its id was not returned. "
                "Look up the identity id for this email and use the profile repair utility."
            )
        else:
            message = (
                f"The login was created (id {identity_id}) but saving its profile failed. "
                "Use the profile repair utility to create the profile for this id."
            )
        super().__init__(message)
        self.identity_id = identity_id
        self.marker_id = marker_id
        self.message = message


class ProvisioningSaga:
    """State tracker of one provisioning run.

    Attributes:
        state: Current state.
        history: States visited, in order.
    """

    def __init__(self, email: str) -> None:
        self.state = ProvisioningState.VALIDATING
        self.history = [ProvisioningState.VALIDATING]
        self._log = logger.bind(email=email)

    def advance(self, state: ProvisioningState, **details: Any) -> None:
        self._log.info("provisioning_transition", from_state=self.state.value, to_state=state.value, **details)
        self.state = state
        self.history.append(state)

    def result(self, user_id: str, identity_linked: bool, warning: str | None = None) -> ProvisioningResult:
        return ProvisioningResult(
            user_id=user_id,
            identity_linked=identity_linked,
            warning=warning,
            state=self.state,
            history=list(self.history),
            completed_at=utc_now(),
        )


class UserProvisioningService:
    """Creates user profiles and their logins.

    Attributes:
        _users: Profile service.
        _organizations: Organization service.
        _identities: Identity client registry (secondary instance source).
        _markers: Pending reconciliation markers.
        _functions: Server function client, when the function path is used.
        _session: Acting session (identity token for server functions).
    """

    def __init__(
        self,
        users: UsersService,
        organizations: OrganizationsService,
        identities: IdentityClientRegistry,
        store: DocumentStore,
        settings: "Settings",
        functions: ProvisioningFunctionClient | None = None,
        session: AuthSession | None = None,
    ) -> None:
        """Initialize the provisioning service.

        Args:
            users: Profile service.
            organizations: Organization service.
            identities: Identity client registry.
            store: Document store (pending reconciliation markers).
            settings: Application settings.
            functions: Server function client.
            session: Session of the acting user.
        """
        self._users = users
        self._organizations = organizations
        self._identities = identities
        self._markers = PendingReconciliations(store)
        self._settings = settings.provisioning
        self._functions = functions
        self._session = session

    # ========== Validation ==========

    def _validate_credentials(self, email: str, password: str | None) -> str:
        email = email.strip()
        if not EMAIL_PATTERN.match(email):
            raise ProvisioningValidationError("email", "Please enter a valid email address.")
        if password is not None and len(password) < self._settings.min_password_length:
            raise ProvisioningValidationError(
                "password",
                f"Password must be at least {self._settings.min_password_length} characters long.",
            )
        return email

    def _validate(
        self,
        request: UserProvisionRequest,
        actor: Actor,
    ) -> tuple[dict[str, Any], str | None]:
        """Validate a request and build the profile to write.

        Returns:
            (profile data, password or None).

        Raises:
            ProvisioningValidationError: If a field is invalid.
            PermissionDeniedError: If the actor may not create this profile.
        """
        password = request.password.get_secret_value() if request.password else None
        password = password or None

        try:
            role = Role.parse(request.role)
        except ValueError as e:
            raise ProvisioningValidationError("role", "Please select a valid role.") from e
        try:
            status = StatusEnum.parse(request.status)
        except ValueError as e:
            raise ProvisioningValidationError("status", "Please select a valid status.") from e

        if role is Role.STUDENT and not request.class_ids:
            raise ProvisioningValidationError(
                CLASS_FIELD, "Students must be assigned to at least one class."
            )
        if role is Role.STUDENT and password is None:
            raise ProvisioningValidationError("password", "A password is required for students.")

        email = self._validate_credentials(request.email, password)

        if actor.is_super_admin:
            organization_id = request.organization_id if role.is_tenant_member else None
        else:
            if request.organization_id and request.organization_id != actor.organization_id:
                raise ProvisioningValidationError(
                    ORGANIZATION_FIELD, "You can only create users in your own organization."
                )
            organization_id = actor.organization_id

        require(actor, Action.CREATE_USER, Resource(organization_id=organization_id, role=role))

        class_ids = list(request.class_ids) if role is Role.STUDENT else []
        violation = profile_invariant_violation(role, organization_id, class_ids)
        if violation is not None:
            field, message = violation
            raise ProvisioningValidationError(field, message)

        profile: dict[str, Any] = {
            "email": email,
            "name": request.name.strip() or email.split("@")[0],
            "phone": request.phone.strip(),
            "role": role.value,
            "status": status.value,
            ORGANIZATION_FIELD: organization_id,
        }
        if role is Role.STUDENT:
            profile[CLASS_FIELD] = class_ids
        return profile, password

    # ========== Provisioning ==========

    async def provision(self, request: UserProvisionRequest, actor: Actor) -> ProvisioningResult:
        """Create a profile, with a login when a password is given.

        Args:
            request: Profile fields and optional password.
            actor: Acting user.

        Returns:
            Result with the profile id and whether a login is linked.

        Raises:
            ProvisioningValidationError: Rejected before any network call.
            PermissionDeniedError: The actor may not create this profile.
            ProvisioningConflictError: A login already exists for the email.
            ProvisioningAbortedError: Provisioning stopped without writes.
            OrphanedIdentityError: The login exists but its profile does not.
        """
        saga = ProvisioningSaga(request.email)
        try:
            profile, password = self._validate(request, actor)
        except (ProvisioningValidationError, PermissionDeniedError) as e:
            saga.advance(ProvisioningState.REJECTED, reason=str(e))
            raise

        if password is None:
            return await self._provision_profile_only(saga, profile)
        if self._settings.use_server_function and self._functions is not None:
            return await self._provision_via_function(saga, profile, password)
        return await self._provision_via_secondary_client(saga, profile, password)

    async def _provision_profile_only(
        self,
        saga: ProvisioningSaga,
        profile: dict[str, Any],
        warning: str | None = None,
    ) -> ProvisioningResult:
        saga.advance(ProvisioningState.PROFILE_ONLY_CREATING)
        try:
            user_id = await self._users.create(profile)
        except (DocumentStoreError, CollectionServiceError) as e:
            saga.advance(ProvisioningState.ABORTED, reason=str(e))
            raise ProvisioningAbortedError("Saving the profile failed", e) from e

        saga.advance(
            ProvisioningState.DONE_WITH_WARNING if warning else ProvisioningState.DONE,
            user_id=user_id,
        )
        return saga.result(user_id, identity_linked=False, warning=warning)

    async def _provision_via_secondary_client(
        self,
        saga: ProvisioningSaga,
        profile: dict[str, Any],
        password: str,
    ) -> ProvisioningResult:
        client = self._identities.get_or_create(self._settings.secondary_client_name)

        saga.advance(ProvisioningState.IDENTITY_CREATING, client=client.name)
        try:
            try:
                identity = await client.create_account(profile["email"], password)
            except IdentityConflictError as e:
                saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
                saga.advance(ProvisioningState.ABORTED, reason="conflict")
                raise ProvisioningConflictError(profile["email"]) from e
            except IdentityError as e:
                saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
                saga.advance(ProvisioningState.ABORTED, reason=e.message)
                raise ProvisioningAbortedError(e.message, e) from e

            saga.advance(ProvisioningState.IDENTITY_CREATED, identity_id=identity.uid)
            try:
                await client.update_display_name(profile["name"])
            except IdentityError as e:
                logger.warning("display_name_update_failed", identity_id=identity.uid, error=str(e))
        finally:
            await client.sign_out()

        return await self._create_linked_profile(saga, identity.uid, profile, merge=False)

    async def _provision_via_function(
        self,
        saga: ProvisioningSaga,
        profile: dict[str, Any],
        password: str,
    ) -> ProvisioningResult:
        id_token = self._session.id_token if self._session is not None else None
        if id_token is None:
            saga.advance(ProvisioningState.ABORTED, reason="no session")
            raise ProvisioningAbortedError("Please sign in again before creating users")

        payload = {
            "email": profile["email"],
            "password": password,
            "name": profile["name"],
            "role": profile["role"],
            "phone": profile["phone"],
            "status": profile["status"],
            "batchIds": profile.get(CLASS_FIELD, []),
        }

        saga.advance(ProvisioningState.IDENTITY_CREATING, function=self._settings.create_user_function)
        try:
            identity_id = await self._functions.create_user(payload, id_token)
        except FunctionUnavailableError as e:
            saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
            return await self._provision_profile_only(saga, profile, warning=PROFILE_ONLY_WARNING)
        except IdentityConflictError as e:
            saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
            saga.advance(ProvisioningState.ABORTED, reason="conflict")
            raise ProvisioningConflictError(profile["email"]) from e
        except FunctionPermissionError as e:
            saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
            saga.advance(ProvisioningState.ABORTED, reason="permission denied")
            raise PermissionDeniedError(e.message, Action.CREATE_USER) from e
        except FunctionResultError as e:
            marker_id = await self._record_orphan(None, profile, e)
            saga.advance(ProvisioningState.PENDING_RECONCILIATION, identity_id=None, marker_id=marker_id)
            raise OrphanedIdentityError(None, marker_id, profile["email"]) from e
        except IdentityError as e:
            saga.advance(ProvisioningState.IDENTITY_FAILED, code=e.code)
            saga.advance(ProvisioningState.ABORTED, reason=e.message)
            raise ProvisioningAbortedError(e.message, e) from e

        saga.advance(ProvisioningState.IDENTITY_CREATED, identity_id=identity_id)
        # The function writes a partial profile; merge the complete one over it
        return await self._create_linked_profile(saga, identity_id, profile, merge=True)

    async def _create_linked_profile(
        self,
        saga: ProvisioningSaga,
        identity_id: str,
        profile: dict[str, Any],
        merge: bool,
    ) -> ProvisioningResult:
        saga.advance(ProvisioningState.PROFILE_CREATING, identity_id=identity_id)
        try:
            if merge:
                await self._users.upsert(identity_id, profile)
            else:
                await self._users.create(profile, document_id=identity_id)
        except (DocumentStoreError, CollectionServiceError) as e:
            marker_id = await self._record_orphan(identity_id, profile, e)
            saga.advance(
                ProvisioningState.PENDING_RECONCILIATION,
                identity_id=identity_id,
                marker_id=marker_id,
            )
            raise OrphanedIdentityError(identity_id, marker_id) from e

        saga.advance(ProvisioningState.DONE, user_id=identity_id)
        return saga.result(identity_id, identity_linked=True)

    async def _record_orphan(
        self,
        identity_id: str | None,
        profile: dict[str, Any],
        error: Exception,
    ) -> str | None:
        try:
            return await self._markers.record(identity_id, profile.get("email"), profile, str(error))
        except DocumentStoreError as marker_error:
            logger.error(
                "reconciliation_marker_failed",
                identity_id=identity_id,
                error=str(marker_error),
            )
            return None

    # ========== Organizations ==========

    async def provision_organization(
        self,
        request: OrganizationProvisionRequest,
        actor: Actor,
    ) -> OrganizationProvisioningResult:
        """Create an organization and its first admin (with login).

        The organization is kept when creating its admin fails; the admin
        can then be provisioned separately.

        Raises:
            PermissionDeniedError: Unless the actor is a super-admin.
            ProvisioningValidationError: If a field is invalid.
        """
        require(actor, Action.CREATE_ORGANIZATION)

        name = request.organization_name.strip()
        if not name:
            raise ProvisioningValidationError("organizationName", "Organization name is required.")
        try:
            status = StatusEnum.parse(request.status)
        except ValueError as e:
            raise ProvisioningValidationError("status", "Please select a valid status.") from e

        password = request.admin_password.get_secret_value() if request.admin_password else ""
        if not password:
            raise ProvisioningValidationError("adminPassword", "A password is required for the admin.")
        self._validate_credentials(request.admin_email, password)

        organization_id = await self._organizations.create({"name": name, "status": status.value})
        logger.info("organization_created", organization_id=organization_id, name=name)

        admin_request = UserProvisionRequest(
            email=request.admin_email,
            name=request.admin_name,
            phone=request.admin_phone,
            role=Role.ADMIN.value,
            status=StatusEnum.ACTIVE.value,
            organization_id=organization_id,
            password=request.admin_password,
        )
        try:
            admin = await self.provision(admin_request, actor)
        except ProvisioningError:
            logger.warning("organization_admin_failed", organization_id=organization_id)
            raise

        return OrganizationProvisioningResult(organization_id=organization_id, admin=admin)
