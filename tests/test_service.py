"""
tests/test_service.py -- Unit tests for auth/service.py and auth/accounts.py.

Covers:
  - Successful login returns a token that verifies to the user's identity
  - Unknown username and wrong password fail identically
  - A store outage during login is NOT reported as bad credentials
  - Account creation/update hash passwords before the store sees them
"""

from __future__ import annotations

import pytest

from auth.accounts import AccountService
from auth.errors import DuplicateError, InvalidCredentials, StorageFault
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import TokenService


@pytest.fixture
def service(seeded_store: CredentialStore, tokens: TokenService, hasher: PasswordHasher) -> AuthService:
    return AuthService(seeded_store, tokens, hasher)


class _DownStore:
    """Stand-in store whose every lookup fails as if the database were gone."""

    def get_user_by_username(self, username: str):
        raise StorageFault()

    def get_user_by_id(self, user_id: int):
        raise StorageFault()


class TestLogin:
    def test_success(self, service: AuthService, tokens: TokenService, admin_password: str) -> None:
        result = service.login("admin", admin_password)
        claims = tokens.verify(result.access_token)
        assert claims.user_id == result.user["id"]
        assert claims.email == "admin@example.com"
        assert result.token_type == "bearer"
        assert result.expires_in == 3600

    def test_result_user_has_no_digest(self, service: AuthService, admin_password: str) -> None:
        result = service.login("admin", admin_password)
        assert "hashed_password" not in result.user
        assert [r["name"] for r in result.user["roles"]] == ["admin"]

    def test_unknown_user_and_wrong_password_look_alike(self, service: AuthService, admin_password: str) -> None:
        with pytest.raises(InvalidCredentials) as unknown:
            service.login("nobody", admin_password)
        with pytest.raises(InvalidCredentials) as wrong:
            service.login("admin", "not-the-password")
        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.message == wrong.value.message == "Invalid username or password."

    def test_unknown_user_still_runs_bcrypt(self, service: AuthService, monkeypatch) -> None:
        calls: list[str] = []
        monkeypatch.setattr(service.hasher, "dummy_verify", lambda plain: calls.append(plain))
        with pytest.raises(InvalidCredentials):
            service.login("nobody", "guess")
        assert calls == ["guess"]

    def test_empty_password_is_rejected(self, service: AuthService) -> None:
        with pytest.raises(InvalidCredentials):
            service.login("admin", "")

    def test_storage_fault_propagates(self, tokens: TokenService, hasher: PasswordHasher, admin_password: str) -> None:
        service = AuthService(_DownStore(), tokens, hasher)
        with pytest.raises(StorageFault):
            service.login("admin", admin_password)

    def test_get_user_and_has_permission(self, service: AuthService, admin_password: str) -> None:
        admin_id = service.login("admin", admin_password).user["id"]
        assert service.get_user(admin_id).username == "admin"
        assert service.has_permission(admin_id, "roles", "write")
        assert not service.has_permission(admin_id, "roles", "delete")


class TestAccounts:
    def test_create_hashes_password(self, accounts: AccountService, hasher: PasswordHasher) -> None:
        user = accounts.create_user("alice", "alice@example.com", "password123", full_name="Alice")
        assert user.hashed_password != "password123"
        assert PasswordHasher.looks_hashed(user.hashed_password)
        assert hasher.verify("password123", user.hashed_password)
        assert user.full_name == "Alice"

    def test_create_keeps_existing_digest(self, accounts: AccountService, hasher: PasswordHasher) -> None:
        digest = hasher.hash("password123")
        assert accounts.create_user("bob", "bob@example.com", digest).hashed_password == digest

    def test_create_duplicate(self, accounts: AccountService) -> None:
        accounts.create_user("alice", "alice@example.com", "password123")
        with pytest.raises(DuplicateError):
            accounts.create_user("alice", "other@example.com", "password123")

    def test_update_rehashes_new_password(self, accounts: AccountService, hasher: PasswordHasher) -> None:
        user = accounts.create_user("alice", "alice@example.com", "password123")
        updated = accounts.update_user(user.id, password="newpassword456")
        assert hasher.verify("newpassword456", updated.hashed_password)
        assert not hasher.verify("password123", updated.hashed_password)

    def test_update_without_password_keeps_digest(self, accounts: AccountService) -> None:
        user = accounts.create_user("alice", "alice@example.com", "password123")
        updated = accounts.update_user(user.id, full_name="Alice L.")
        assert updated.hashed_password == user.hashed_password
        assert updated.full_name == "Alice L."

    def test_login_after_password_change(
        self, store: CredentialStore, accounts: AccountService, tokens: TokenService, hasher: PasswordHasher
    ) -> None:
        user = accounts.create_user("alice", "alice@example.com", "password123")
        accounts.update_user(user.id, password="newpassword456")
        service = AuthService(store, tokens, hasher)
        with pytest.raises(InvalidCredentials):
            service.login("alice", "password123")
        assert service.login("alice", "newpassword456").user["username"] == "alice"
