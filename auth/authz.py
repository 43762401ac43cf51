"""
auth/authz.py -- Permission resolution: user -> roles -> permissions -> decision.

Rules:
  - Additive only. A single matching permission on any one role grants
    access. There are no deny entries and no precedence between roles.
  - Exact match. (resource, action) is compared case-sensitively with ==;
    no wildcards, no resource hierarchy.
  - No match is a plain False, not an error. Errors are reserved for "the
    user could not be loaded": NotFound or StorageFault, both LookupError
    subclasses, raised unchanged for the caller to map.

The engine holds no state besides the store reference and never writes.
Repeated calls over unchanged data return identical answers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import User


class UserSource(Protocol):
    """The one store capability the engine needs."""

    def get_user_by_id(self, user_id: int) -> User: ...


def has_role(user: User, role_name: str) -> bool:
    """True iff one of user's roles is named exactly role_name. None/empty roles -> False."""
    return any(role.name == role_name for role in user.roles or [])


def permissions_for(user: User) -> frozenset[tuple[str, str]]:
    """Union of (resource, action) pairs granted through all of user's roles."""
    return frozenset((perm.resource, perm.action) for role in user.roles or [] for perm in role.permissions or [])


def user_has_permission(user: User, resource: str, action: str) -> bool:
    """Decide against an already-loaded user."""
    return any(
        perm.resource == resource and perm.action == action
        for role in user.roles or []
        for perm in role.permissions or []
    )


class AuthorizationEngine:
    """Answers "may user X do A on R?" from the store's current grants.

    Usage:
        engine = AuthorizationEngine(store)
        engine.has_permission(user_id, "users", "read")   # True / False
    """

    def __init__(self, users: UserSource) -> None:
        self._users = users

    def has_permission(self, user_id: int, resource: str, action: str) -> bool:
        """Load the user with its full grant expansion and look for an exact match.

        Raises NotFound if the user does not exist, StorageFault if the store
        fails. Both propagate -- the caller decides how to surface them.
        """
        user = self._users.get_user_by_id(user_id)
        return user_has_permission(user, resource, action)

    @staticmethod
    def has_role(user: User, role_name: str) -> bool:
        return has_role(user, role_name)
