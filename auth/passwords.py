"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

Digests are self-describing ("$2b$12$<22 char salt><31 char hash>"), so
verification needs nothing but the stored string.

"Already hashed" is decided by format only (looks_hashed). The account
pipeline uses it to avoid hashing a digest a second time on update paths,
and the store uses it to refuse plaintext.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re

import bcrypt

_BCRYPT_RE = re.compile(r"^\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}$")

DEFAULT_ROUNDS = 12
_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_BYTES]


class PasswordHasher:
    """Salted, cost-parameterized one-way hashing of plaintext credentials.

    Usage:
        hasher = PasswordHasher(rounds=12)
        digest = hasher.hash("s3cret")
        hasher.verify("s3cret", digest)   # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Timing equalization dummy digest. Computed once so the first failed
        # login is not measurably slower than the ones after it.
        self._dummy_hash = self.hash("rbacauth_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest of the given plaintext.

        bcrypt only looks at the first 72 bytes, and bcrypt 5 raises instead of
        truncating, so the input is cut to 72 bytes here for both hash and verify.
        """
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if the plaintext matches the digest. Never raises."""
        if not plain or not hashed:
            return False
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except ValueError:
            # Malformed digest (bad salt, not bcrypt at all).
            return False

    def dummy_verify(self, plain: str) -> None:
        """Burn one bcrypt verification so an unknown username costs the same as a wrong password."""
        self.verify(plain or "x", self._dummy_hash)

    @staticmethod
    def looks_hashed(value: str | None) -> bool:
        """Return True if value has the shape of a bcrypt digest."""
        return bool(value) and _BCRYPT_RE.match(value) is not None

    def ensure_hashed(self, value: str) -> str:
        """Hash value unless it already looks like a digest."""
        if self.looks_hashed(value):
            return value
        return self.hash(value)
