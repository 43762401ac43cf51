"""
auth/tokens.py -- Session token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured secret
       and carry user_id, email, iss, iat, nbf and exp. Nothing is stored
       server side -- validity is signature + time window, nothing else.

  Algorithm pinning: decode() is called with algorithms=[config.algorithm].
       A token whose header names any other algorithm (HS512, RS256, "none")
       is rejected outright, not merely warned about.

  Uniform failure: verify() raises InvalidToken with one message for every
       failure mode. The concrete reason (expired, bad signature, malformed)
       is logged at debug level only, so callers cannot distinguish them.

  Injected config: TokenService receives an immutable TokenConfig at
       construction. There is no module-level secret; two services with
       different keys can coexist in one process (tests rely on this).

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import InvalidToken, TokenSigningError
from auth.models import SessionClaims

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("rbacauth.auth")

_ALGORITHM = "HS256"


def _is_numeric_date(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class TokenConfig:
    """Signing key, issuer and lifetime for session tokens."""

    secret_key: str
    issuer: str
    duration_seconds: int
    algorithm: str = _ALGORITHM

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(
            secret_key=settings.secret_key,
            issuer=settings.token_issuer,
            duration_seconds=settings.token_expire_seconds,
        )


class TokenService:
    """Issues and verifies signed, time-bounded identity assertions.

    Usage:
        tokens = TokenService(TokenConfig(secret_key=key, issuer="auth-api", duration_seconds=3600))
        token = tokens.issue(42, "alice@example.com")
        claims = tokens.verify(token)   # SessionClaims(user_id=42, ...)
    """

    def __init__(self, config: TokenConfig) -> None:
        self.config = config

    def issue(self, user_id: int, email: str) -> str:
        """Encode a signed JWT for the given identity.

        exp = iat + duration_seconds. A zero or negative duration still
        produces a token, but verify() will never accept it.
        """
        if not self.config.secret_key:
            raise TokenSigningError()
        now = int(datetime.now(timezone.utc).timestamp())
        payload = {
            "user_id": user_id,
            "email": email,
            "iss": self.config.issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self.config.duration_seconds,
        }
        try:
            return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)
        except JOSEError as exc:
            raise TokenSigningError() from exc

    def verify(self, token: str) -> SessionClaims:
        """Decode and verify a JWT. Returns SessionClaims or raises InvalidToken."""
        try:
            payload = jwt.decode(
                token,
                self.config.secret_key,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                options={"require_exp": True, "require_iat": True, "require_iss": True},
            )
        except (JOSEError, ValueError, TypeError, AttributeError) as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidToken() from exc

        user_id = payload.get("user_id")
        email = payload.get("email")
        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or not isinstance(email, str):
            logger.debug("Token rejected: identity claims missing or mistyped")
            raise InvalidToken()
        if not (_is_numeric_date(issued_at) and _is_numeric_date(expires_at)):
            logger.debug("Token rejected: iat/exp are not NumericDate values")
            raise InvalidToken()
        # A token with no positive lifetime was never valid. jose only checks
        # exp against the clock, which lets a zero-duration token through for
        # the rest of the second it was issued in.
        if expires_at <= issued_at:
            logger.debug("Token rejected: non-positive lifetime")
            raise InvalidToken()

        return SessionClaims(
            user_id=user_id,
            email=email,
            issuer=payload["iss"],
            issued_at=datetime.fromtimestamp(issued_at, tz=timezone.utc),
            expires_at=datetime.fromtimestamp(expires_at, tz=timezone.utc),
        )
