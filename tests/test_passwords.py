"""Unit tests for auth/passwords.py -- bcrypt hashing and the "already hashed" rule."""

from __future__ import annotations

from auth.passwords import PasswordHasher


def test_hash_is_not_plaintext_and_verifies(hasher: PasswordHasher) -> None:
    digest = hasher.hash("password123")
    assert digest != "password123"
    assert hasher.verify("password123", digest)
    assert not hasher.verify("wrongpassword", digest)


def test_hash_is_salted(hasher: PasswordHasher) -> None:
    assert hasher.hash("same-secret") != hasher.hash("same-secret")


def test_digest_embeds_cost(hasher: PasswordHasher) -> None:
    assert hasher.hash("x" * 10).startswith("$2b$04$")


def test_verify_empty_password_is_false(hasher: PasswordHasher) -> None:
    digest = hasher.hash("securepwd")
    assert not hasher.verify("", digest)


def test_verify_malformed_digest_returns_false(hasher: PasswordHasher) -> None:
    """A corrupt stored digest must read as a mismatch, never raise."""
    assert not hasher.verify("password123", "not-a-bcrypt-hash")
    assert not hasher.verify("password123", "")


def test_looks_hashed_by_format_only(hasher: PasswordHasher) -> None:
    assert PasswordHasher.looks_hashed(hasher.hash("pw"))
    assert not PasswordHasher.looks_hashed("rawpassword")
    assert not PasswordHasher.looks_hashed("")
    assert not PasswordHasher.looks_hashed(None)
    # 60 chars but not the bcrypt shape
    assert not PasswordHasher.looks_hashed("a" * 60)


def test_ensure_hashed_does_not_double_hash(hasher: PasswordHasher) -> None:
    digest = hasher.hash("rawpassword")
    assert hasher.ensure_hashed(digest) == digest


def test_ensure_hashed_hashes_plaintext(hasher: PasswordHasher) -> None:
    digest = hasher.ensure_hashed("rawpassword")
    assert digest != "rawpassword"
    assert hasher.verify("rawpassword", digest)


def test_dummy_verify_never_raises(hasher: PasswordHasher) -> None:
    hasher.dummy_verify("anything")
    hasher.dummy_verify("")


def test_long_password_hashes_and_verifies(hasher: PasswordHasher) -> None:
    """bcrypt only sees 72 bytes; longer input must still hash and verify."""
    long_pw = "p" * 200
    digest = hasher.hash(long_pw)
    assert hasher.verify(long_pw, digest)
