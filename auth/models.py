"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). The store maps
rows onto these; services and routes do the work.

Grant shape: User.roles -> Role.permissions -> Permission. The store fills
both levels when loading a user, so the authorization engine never needs a
second round trip.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Permission:
    """An atomic (resource, action) grant, e.g. ("users", "read").

    (resource, action) is unique across all permission records. Matching is
    exact and case-sensitive -- no wildcards, no resource hierarchy.
    """

    resource: str
    action: str
    description: str = ""
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def key(self) -> str:
        return f"{self.resource}:{self.action}"


@dataclass
class Role:
    """A named bundle of permissions. Name is unique; a role may be shared by many users."""

    name: str
    description: str = ""
    permissions: list[Permission] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class User:
    """An authenticable principal.

    hashed_password is always a bcrypt digest once the record has been
    through the store -- CredentialStore refuses anything else. It must never
    leave the core: routes serialize users through to_public().

    roles is None when a caller built the object by hand without loading
    grants; the authorization engine treats None the same as [].
    """

    username: str
    email: str
    hashed_password: str = ""
    full_name: str = ""
    roles: list[Role] | None = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_public(self) -> dict:
        """Sanitized projection: no password digest, no timestamps."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "roles": [
                {
                    "id": role.id,
                    "name": role.name,
                    "description": role.description,
                    "permissions": [
                        {
                            "id": perm.id,
                            "resource": perm.resource,
                            "action": perm.action,
                            "description": perm.description,
                        }
                        for perm in role.permissions
                    ],
                }
                for role in self.roles or []
            ],
        }


@dataclass(frozen=True)
class SessionClaims:
    """Decoded payload of a verified session token. Never persisted."""

    user_id: int
    email: str
    issuer: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class LoginResult:
    """Successful login: the signed token plus the sanitized user projection."""

    access_token: str
    expires_in: int
    user: dict
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
