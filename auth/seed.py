"""
auth/seed.py -- Default permissions, roles and bootstrap admin.

Idempotent: every record is looked up first and only created if missing, so
this is safe to run on every startup. Existing grants are never removed.

Default matrix:
  admin       every permission
  supervisor  every "read" permission
  editor      users:read, users:write
  viewer      every "read" permission
"""

from __future__ import annotations

import logging

from auth.accounts import AccountService
from auth.errors import NotFound
from auth.models import Permission, Role
from auth.store import CredentialStore

logger = logging.getLogger("rbacauth.auth")

DEFAULT_PERMISSIONS: list[tuple[str, str, str]] = [
    ("users", "read", "Read user accounts"),
    ("users", "write", "Create, update and delete user accounts"),
    ("roles", "read", "Read roles"),
    ("roles", "write", "Create, update and delete roles"),
    ("permissions", "read", "Read permissions"),
    ("permissions", "write", "Create, update and delete permissions"),
]

DEFAULT_ROLES: dict[str, str] = {
    "admin": "System administrator",
    "supervisor": "Supervisor",
    "editor": "Editor",
    "viewer": "Viewer",
}


def _role_grants(role_name: str, perm: Permission) -> bool:
    if role_name == "admin":
        return True
    if role_name in ("supervisor", "viewer"):
        return perm.action == "read"
    if role_name == "editor":
        return perm.resource == "users" and perm.action in ("read", "write")
    return False


def seed_defaults(
    store: CredentialStore,
    accounts: AccountService,
    *,
    admin_username: str = "admin",
    admin_email: str = "admin@example.com",
    admin_password: str = "",
) -> None:
    """Create any missing default permissions, roles and the bootstrap admin.

    Roles only receive their default grants when they are first created; an
    operator's later edits to a seeded role are left alone.
    """
    permissions: list[Permission] = []
    for resource, action, description in DEFAULT_PERMISSIONS:
        try:
            perm = store.find_permission(resource, action)
        except NotFound:
            store.create_permission(Permission(resource=resource, action=action, description=description))
            perm = store.find_permission(resource, action)
            logger.info("Seeded permission %s", perm.key)
        permissions.append(perm)

    for name, description in DEFAULT_ROLES.items():
        try:
            store.get_role_by_name(name)
            continue
        except NotFound:
            role_id = store.create_role(Role(name=name, description=description))
        for perm in permissions:
            if _role_grants(name, perm):
                store.add_permission_to_role(role_id, perm.id)
        logger.info("Seeded role %s", name)

    if not admin_password:
        logger.info("No admin password configured -- bootstrap admin not created")
        return
    try:
        store.get_user_by_username(admin_username)
        return
    except NotFound:
        pass
    admin = accounts.create_user(admin_username, admin_email, admin_password, full_name="System Administrator")
    store.add_role_to_user(admin.id, store.get_role_by_name("admin").id)
    logger.info("Seeded bootstrap admin %s", admin_username)
