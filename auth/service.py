"""
auth/service.py -- Login flow and the capability interface the request gate uses.

AuthServiceInterface is the seam between the HTTP layer and the core:
auth/dependencies.py only ever talks to app.state.auth_service through these
three methods, so tests can install a fake without touching the store.

Login is constant-time with respect to username existence [C1]:
  - Unknown username: bcrypt runs against a dummy digest (same cost as a real check)
  - Wrong password:   bcrypt runs against the real digest
  Both raise the same InvalidCredentials with the same message.
A StorageFault during the lookup is NOT collapsed -- an outage is not a bad
password and must stay visible to the caller as a retryable error.

Layer rule: no imports from api/. core/ is allowed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from auth.authz import AuthorizationEngine
from auth.errors import InvalidCredentials, NotFound
from auth.models import LoginResult, User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore
from auth.tokens import TokenConfig, TokenService

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("rbacauth.auth")


class AuthServiceInterface(Protocol):
    """What the request gate needs from the core."""

    def get_user(self, user_id: int) -> User: ...

    def has_permission(self, user_id: int, resource: str, action: str) -> bool: ...

    def login(self, username: str, password: str) -> LoginResult: ...


class AuthService:
    """Production implementation of AuthServiceInterface over a CredentialStore."""

    def __init__(self, store: CredentialStore, tokens: TokenService, hasher: PasswordHasher) -> None:
        self.store = store
        self.tokens = tokens
        self.hasher = hasher
        self.engine = AuthorizationEngine(store)

    @classmethod
    def from_settings(cls, store: CredentialStore, settings: Settings) -> AuthService:
        return cls(
            store=store,
            tokens=TokenService(TokenConfig.from_settings(settings)),
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        )

    def get_user(self, user_id: int) -> User:
        """Load a user with grants. Raises NotFound or StorageFault."""
        return self.store.get_user_by_id(user_id)

    def has_permission(self, user_id: int, resource: str, action: str) -> bool:
        return self.engine.has_permission(user_id, resource, action)

    def login(self, username: str, password: str) -> LoginResult:
        """Exchange a username/password for a signed session token.

        Raises InvalidCredentials for an unknown username or a wrong password
        (indistinguishable by type, message and timing).
        """
        try:
            user = self.store.get_user_by_username(username)
        except NotFound:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self.hasher.dummy_verify(password)
            logger.info("Login failed: unknown username")
            raise InvalidCredentials() from None

        if not self.hasher.verify(password, user.hashed_password):
            logger.info("Login failed: bad password for user id=%s", user.id)
            raise InvalidCredentials()

        token = self.tokens.issue(user.id, user.email)
        logger.info("Login succeeded for user id=%s", user.id)
        return LoginResult(
            access_token=token,
            expires_in=self.tokens.config.duration_seconds,
            user=user.to_public(),
        )
