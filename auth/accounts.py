"""
auth/accounts.py -- User creation and update pipeline.

"Hash before persist" is an explicit step here rather than a hidden record
hook: every path that writes a password goes through
PasswordHasher.ensure_hashed() before the store sees it. The store then
double-checks the digest format and refuses plaintext.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.models import User
from auth.passwords import PasswordHasher
from auth.store import CredentialStore

logger = logging.getLogger("rbacauth.auth")


class AccountService:
    """Create and update user accounts with password hashing applied up front."""

    def __init__(self, store: CredentialStore, hasher: PasswordHasher) -> None:
        self.store = store
        self.hasher = hasher

    def create_user(self, username: str, email: str, password: str, full_name: str = "") -> User:
        """Hash the password, insert the user and return the stored record.

        Raises DuplicateError if the username or email is taken.
        """
        user = User(
            username=username,
            email=email,
            hashed_password=self.hasher.ensure_hashed(password),
            full_name=full_name,
        )
        user_id = self.store.create_user(user)
        logger.info("Created user %s (id=%s)", username, user_id)
        return self.store.get_user_by_id(user_id)

    def update_user(
        self,
        user_id: int,
        *,
        username: str | None = None,
        email: str | None = None,
        password: str | None = None,
        full_name: str | None = None,
    ) -> User:
        """Apply the provided changes. A new password is hashed before it is written."""
        hashed = self.hasher.ensure_hashed(password) if password else None
        return self.store.update_user(
            user_id,
            username=username,
            email=email,
            hashed_password=hashed,
            full_name=full_name,
        )
