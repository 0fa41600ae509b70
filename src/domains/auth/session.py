# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authenticated session of the acting user.

AuthSession drives the session state machine:

    ANONYMOUS -> AUTHENTICATING -> AUTHENTICATED
                                -> AUTHENTICATED_NO_PROFILE
                                -> FAILED

AUTHENTICATED_NO_PROFILE is recoverable: the identity exists but its
profile does not, and the actor is treated as a student without an
organization until a profile is repaired.

Each sign-in or sign-out starts a new epoch. A result belonging to an
older epoch is discarded with SessionSupersededError instead of
overwriting newer state.

Example:
    >>> session = AuthSession(registry.default(), ProfileResolver(store))
    >>> actor = await session.sign_in("admin@school.test", "secret1")
    >>> session.organization_id()
    'org-1'
"""

import logging
from enum import Enum

from src.domains.auth.resolver import Actor, ProfileResolver
from src.domains.auth.tokens import IdentityTokenVerifier, TokenError
from src.infrastructure.identity import IdentityError, IdentityProviderClient
from src.models.common import Role
from src.utils.logging import bind_context, unbind_context

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base exception for session errors."""

    pass


class NotAuthenticatedError(SessionError):
    """Raised when an operation needs a signed-in actor."""

    pass


class SessionSupersededError(SessionError):
    """Raised when a result arrives after a later sign-in or sign-out."""

    pass


class SessionState(str, Enum):
    """States of an authenticated session."""

    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    AUTHENTICATED_NO_PROFILE = "authenticated_no_profile"
    FAILED = "failed"


class AuthSession:
    """Session of the acting user.

    Attributes:
        state: Current session state.
        actor: Resolved actor, None unless authenticated.
    """

    def __init__(
        self,
        identity: IdentityProviderClient,
        resolver: ProfileResolver,
        verifier: IdentityTokenVerifier | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            identity: Identity client holding the acting user's session.
            resolver: Profile resolver.
            verifier: Token verifier used by restore().
        """
        self._identity = identity
        self._resolver = resolver
        self._verifier = verifier
        self._epoch = 0
        self._restored_token: str | None = None
        self.state = SessionState.ANONYMOUS
        self.actor: Actor | None = None

    @property
    def id_token(self) -> str | None:
        """Identity token of the signed-in or restored user."""
        if self._restored_token is not None:
            return self._restored_token
        session = self._identity.current_user()
        return session.id_token if session else None

    # ========== Transitions ==========

    def _begin(self) -> int:
        self._epoch += 1
        self.state = SessionState.AUTHENTICATING
        self.actor = None
        self._restored_token = None
        return self._epoch

    def _ensure_current(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise SessionSupersededError("A newer sign-in or sign-out replaced this one")

    def _fail(self, epoch: int) -> None:
        if epoch == self._epoch:
            self.state = SessionState.FAILED

    def _complete(self, actor: Actor) -> Actor:
        self.actor = actor
        self.state = (
            SessionState.AUTHENTICATED if actor.has_profile else SessionState.AUTHENTICATED_NO_PROFILE
        )
        bind_context(actor_id=actor.uid, organization_id=actor.organization_id)
        logger.info(
            "Session %s for %s (role=%s, organization=%s)",
            self.state.value,
            actor.uid,
            actor.role.value,
            actor.organization_id,
        )
        return actor

    async def sign_in(self, email: str, password: str) -> Actor:
        """Sign in with email and password and resolve the actor.

        Raises:
            IdentityError: If the identity provider rejects the sign-in.
            SessionSupersededError: If another sign-in or sign-out
                happened while this one was in flight.
        """
        epoch = self._begin()
        try:
            identity = await self._identity.sign_in(email, password)
        except IdentityError:
            self._fail(epoch)
            raise

        self._ensure_current(epoch)
        actor = await self._resolver.resolve(identity.uid, identity.email)
        self._ensure_current(epoch)
        return self._complete(actor)

    async def restore(self, id_token: str) -> Actor:
        """Resume a session from a previously issued identity token.

        Raises:
            TokenError: If the token does not verify.
            SessionSupersededError: If superseded while in flight.
        """
        if self._verifier is None:
            raise SessionError("No token verifier configured")

        epoch = self._begin()
        try:
            claims = await self._verifier.verify(id_token)
        except TokenError:
            self._fail(epoch)
            raise

        self._ensure_current(epoch)
        actor = await self._resolver.resolve(claims.uid, claims.email)
        self._ensure_current(epoch)
        self._restored_token = id_token
        return self._complete(actor)

    async def sign_out(self) -> None:
        """End the session."""
        self._epoch += 1
        actor = self.actor
        await self._identity.sign_out()
        self._restored_token = None
        self.actor = None
        self.state = SessionState.ANONYMOUS
        unbind_context("actor_id", "organization_id")
        if actor is not None:
            logger.info("Signed out %s", actor.uid)

    # ========== Capability accessors ==========

    def role(self) -> Role | None:
        """Role of the signed-in actor, None when anonymous."""
        return self.actor.role if self.actor else None

    def organization_id(self) -> str | None:
        return self.actor.organization_id if self.actor else None

    def is_super_admin(self) -> bool:
        return bool(self.actor and self.actor.is_super_admin)

    def require_actor(self) -> Actor:
        """Return the signed-in actor.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
        """
        if self.actor is None:
            raise NotAuthenticatedError("Please sign in first")
        return self.actor
