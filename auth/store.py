"""
auth/store.py -- SQLAlchemy Core persistence layer for users, roles and permissions.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_role / _row_to_permission are the mappers. Route and
service code never touches SQL directly.

Grants:
  users <-> roles (user_roles) and roles <-> permissions (role_permissions)
  are plain many-to-many association tables. Appending an association that
  already exists is a no-op. Deleting a user, role or permission removes the
  association rows that reference it in the same transaction.

  A user's two-level expansion (user -> roles -> permissions) is read with a
  single joined SELECT, so one authorization decision never sees half of a
  concurrent grant/revoke.

Errors:
  Missing records raise NotFound. Uniqueness is checked in code first (to give
  a precise message) and backed by UNIQUE constraints; an IntegrityError that
  slips past the check (concurrent insert) is still reported as
  DuplicateError. Any other SQLAlchemyError becomes StorageFault so callers
  never confuse "not there" with "could not ask".

Security:
  All queries use bound parameters. No f-strings in SQL.
  hashed_password must look like a bcrypt digest or the write is refused --
  plaintext never reaches the database.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import DuplicateError, NotFound, StorageFault
from auth.models import Permission, Role, User
from auth.passwords import PasswordHasher

logger = logging.getLogger("rbacauth.store")

_DEFAULT_DB_URL = "sqlite:///rbac_auth.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("full_name", String(255), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_permissions = Table(
    "permissions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("resource", String(100), nullable=False),
    Column("action", String(100), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("resource", "action", name="uq_permissions_resource_action"),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

_role_permissions = Table(
    "role_permissions",
    _metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. WAL lets readers proceed while a grant is
    being written.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User, Role and Permission records and their grants.

    Usage:
        store = CredentialStore("sqlite:///:memory:")
        role_id = store.create_role(Role(name="viewer"))
        perm_id = store.create_permission(Permission(resource="users", action="read"))
        store.add_permission_to_role(role_id, perm_id)
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        with self._guard("schema"):
            _metadata.create_all(self.engine)

    @contextmanager
    def _guard(self, what: str) -> Iterator[None]:
        """Translate driver errors into the auth error taxonomy."""
        try:
            yield
        except IntegrityError as exc:
            raise DuplicateError(f"{what.capitalize()} already exists.") from exc
        except SQLAlchemyError as exc:
            logger.error("Credential store error during %s: %s", what, exc.__class__.__name__)
            raise StorageFault() from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return False
        return True

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self._guard("user"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its id.

        user.hashed_password must already be a bcrypt digest -- hashing is the
        account pipeline's job (auth/accounts.py), not the store's.

        Raises DuplicateError if the username or email is taken.
        """
        _require_digest(user.hashed_password)
        now = _now_iso()
        with self._guard("user"), self.engine.begin() as conn:
            if conn.execute(
                select(_users.c.id).where((_users.c.username == user.username) | (_users.c.email == user.email))
            ).first():
                raise DuplicateError("Username or email already exists.")
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    full_name=user.full_name,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_user_by_id(self, user_id: int) -> User:
        """Load a user with its roles and each role's permissions. Raises NotFound."""
        with self._guard("user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if row is None:
                raise NotFound("user", user_id)
            roles = _load_user_roles(conn, [row.id])
        return _row_to_user(row, roles.get(row.id, []))

    def get_user_by_username(self, username: str) -> User:
        """Exact (case-sensitive) username lookup with grants loaded. Raises NotFound."""
        with self._guard("user"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
            if row is None:
                raise NotFound("user", username)
            roles = _load_user_roles(conn, [row.id])
        return _row_to_user(row, roles.get(row.id, []))

    def list_users(self) -> list[User]:
        """Return all users ordered by username, grants loaded."""
        with self._guard("user"), self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
            roles = _load_user_roles(conn, [r.id for r in rows])
        return [_row_to_user(r, roles.get(r.id, [])) for r in rows]

    def update_user(
        self,
        user_id: int,
        *,
        username: str | None = None,
        email: str | None = None,
        hashed_password: str | None = None,
        full_name: str | None = None,
    ) -> User:
        """Update the provided fields and return the refreshed user.

        Uniqueness of username/email is re-checked only when the value
        actually changes. Raises NotFound or DuplicateError.
        """
        if hashed_password is not None:
            _require_digest(hashed_password)
        with self._guard("user"), self.engine.begin() as conn:
            current = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
            if current is None:
                raise NotFound("user", user_id)

            updates: dict = {}
            if username is not None and username != current.username:
                if conn.execute(select(_users.c.id).where(_users.c.username == username)).first():
                    raise DuplicateError("Username already exists.")
                updates["username"] = username
            if email is not None and email != current.email:
                if conn.execute(select(_users.c.id).where(_users.c.email == email)).first():
                    raise DuplicateError("Email already exists.")
                updates["email"] = email
            if hashed_password is not None:
                updates["hashed_password"] = hashed_password
            if full_name is not None:
                updates["full_name"] = full_name

            if updates:
                updates["updated_at"] = _now_iso()
                conn.execute(_users.update().where(_users.c.id == user_id).values(**updates))
        return self.get_user_by_id(user_id)

    def delete_user(self, user_id: int) -> None:
        """Delete a user and its role assignments. Raises NotFound."""
        with self._guard("user"), self.engine.begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            if result.rowcount == 0:
                raise NotFound("user", user_id)

    def add_role_to_user(self, user_id: int, role_id: int) -> None:
        """Grant a role to a user. Idempotent. Raises NotFound for either id."""
        with self._guard("role assignment"), self.engine.begin() as conn:
            _require_row(conn, _users, user_id, "user")
            _require_row(conn, _roles, role_id, "role")
            exists = conn.execute(
                select(_user_roles.c.user_id).where(
                    (_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id)
                )
            ).first()
            if not exists:
                conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))

    def remove_role_from_user(self, user_id: int, role_id: int) -> None:
        """Revoke a role from a user. Removing an absent grant is a no-op."""
        with self._guard("role assignment"), self.engine.begin() as conn:
            _require_row(conn, _users, user_id, "user")
            _require_row(conn, _roles, role_id, "role")
            conn.execute(
                _user_roles.delete().where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_id == role_id))
            )

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        """Insert a role and return its id. Raises DuplicateError if the name is taken."""
        now = _now_iso()
        with self._guard("role"), self.engine.begin() as conn:
            if conn.execute(select(_roles.c.id).where(_roles.c.name == role.name)).first():
                raise DuplicateError("Role name already exists.")
            result = conn.execute(
                _roles.insert().values(name=role.name, description=role.description, created_at=now, updated_at=now)
            )
            return result.inserted_primary_key[0]

    def get_role(self, role_id: int) -> Role:
        """Load a role with its permissions. Raises NotFound."""
        with self._guard("role"), self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            if row is None:
                raise NotFound("role", role_id)
            perms = _load_role_permissions(conn, [row.id])
        return _row_to_role(row, perms.get(row.id, []))

    def get_role_by_name(self, name: str) -> Role:
        with self._guard("role"), self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
            if row is None:
                raise NotFound("role", name)
            perms = _load_role_permissions(conn, [row.id])
        return _row_to_role(row, perms.get(row.id, []))

    def list_roles(self) -> list[Role]:
        with self._guard("role"), self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
            perms = _load_role_permissions(conn, [r.id for r in rows])
        return [_row_to_role(r, perms.get(r.id, [])) for r in rows]

    def update_role(self, role_id: int, *, name: str | None = None, description: str | None = None) -> Role:
        """Rename and/or re-describe a role. Name uniqueness is checked only on change."""
        with self._guard("role"), self.engine.begin() as conn:
            current = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
            if current is None:
                raise NotFound("role", role_id)

            updates: dict = {}
            if name is not None and name != current.name:
                if conn.execute(select(_roles.c.id).where(_roles.c.name == name)).first():
                    raise DuplicateError("Role name already exists.")
                updates["name"] = name
            if description is not None:
                updates["description"] = description

            if updates:
                updates["updated_at"] = _now_iso()
                conn.execute(_roles.update().where(_roles.c.id == role_id).values(**updates))
        return self.get_role(role_id)

    def delete_role(self, role_id: int) -> None:
        """Delete a role and every association that references it. Raises NotFound."""
        with self._guard("role"), self.engine.begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.role_id == role_id))
            conn.execute(_role_permissions.delete().where(_role_permissions.c.role_id == role_id))
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            if result.rowcount == 0:
                raise NotFound("role", role_id)

    def add_permission_to_role(self, role_id: int, permission_id: int) -> None:
        """Attach a permission to a role. Idempotent. Raises NotFound for either id."""
        with self._guard("permission grant"), self.engine.begin() as conn:
            _require_row(conn, _roles, role_id, "role")
            _require_row(conn, _permissions, permission_id, "permission")
            exists = conn.execute(
                select(_role_permissions.c.role_id).where(
                    (_role_permissions.c.role_id == role_id) & (_role_permissions.c.permission_id == permission_id)
                )
            ).first()
            if not exists:
                conn.execute(_role_permissions.insert().values(role_id=role_id, permission_id=permission_id))

    def remove_permission_from_role(self, role_id: int, permission_id: int) -> None:
        with self._guard("permission grant"), self.engine.begin() as conn:
            _require_row(conn, _roles, role_id, "role")
            _require_row(conn, _permissions, permission_id, "permission")
            conn.execute(
                _role_permissions.delete().where(
                    (_role_permissions.c.role_id == role_id) & (_role_permissions.c.permission_id == permission_id)
                )
            )

    # ------------------------------------------------------------------
    # Permission queries
    # ------------------------------------------------------------------

    def create_permission(self, permission: Permission) -> int:
        """Insert a permission. Raises DuplicateError if (resource, action) already exists."""
        now = _now_iso()
        with self._guard("permission"), self.engine.begin() as conn:
            if _find_permission_id(conn, permission.resource, permission.action) is not None:
                raise DuplicateError("Permission already exists.")
            result = conn.execute(
                _permissions.insert().values(
                    resource=permission.resource,
                    action=permission.action,
                    description=permission.description,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_permission(self, permission_id: int) -> Permission:
        with self._guard("permission"), self.engine.connect() as conn:
            row = conn.execute(_permissions.select().where(_permissions.c.id == permission_id)).fetchone()
        if row is None:
            raise NotFound("permission", permission_id)
        return _row_to_permission(row)

    def find_permission(self, resource: str, action: str) -> Permission:
        """Exact (resource, action) lookup. Raises NotFound."""
        with self._guard("permission"), self.engine.connect() as conn:
            row = conn.execute(
                _permissions.select().where((_permissions.c.resource == resource) & (_permissions.c.action == action))
            ).fetchone()
        if row is None:
            raise NotFound("permission", f"{resource}:{action}")
        return _row_to_permission(row)

    def list_permissions(self) -> list[Permission]:
        with self._guard("permission"), self.engine.connect() as conn:
            rows = conn.execute(
                _permissions.select().order_by(_permissions.c.resource, _permissions.c.action)
            ).fetchall()
        return [_row_to_permission(r) for r in rows]

    def update_permission(
        self,
        permission_id: int,
        *,
        resource: str | None = None,
        action: str | None = None,
        description: str | None = None,
    ) -> Permission:
        """Update a permission.

        The (resource, action) pair is re-validated only when one of them
        actually changes, and only against other live records -- there is no
        soft-delete state to consider.
        """
        with self._guard("permission"), self.engine.begin() as conn:
            current = conn.execute(_permissions.select().where(_permissions.c.id == permission_id)).fetchone()
            if current is None:
                raise NotFound("permission", permission_id)

            new_resource = resource if resource is not None else current.resource
            new_action = action if action is not None else current.action
            updates: dict = {}
            if (new_resource, new_action) != (current.resource, current.action):
                other = _find_permission_id(conn, new_resource, new_action)
                if other is not None and other != permission_id:
                    raise DuplicateError("Permission already exists.")
                updates["resource"] = new_resource
                updates["action"] = new_action
            if description is not None:
                updates["description"] = description

            if updates:
                updates["updated_at"] = _now_iso()
                conn.execute(_permissions.update().where(_permissions.c.id == permission_id).values(**updates))
        return self.get_permission(permission_id)

    def delete_permission(self, permission_id: int) -> None:
        with self._guard("permission"), self.engine.begin() as conn:
            conn.execute(_role_permissions.delete().where(_role_permissions.c.permission_id == permission_id))
            result = conn.execute(_permissions.delete().where(_permissions.c.id == permission_id))
            if result.rowcount == 0:
                raise NotFound("permission", permission_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def _require_digest(value: str) -> None:
    if not PasswordHasher.looks_hashed(value):
        raise ValueError("hashed_password must be a bcrypt digest; hash before persisting.")


def _require_row(conn: Connection, table: Table, record_id: int, kind: str) -> None:
    if conn.execute(select(table.c.id).where(table.c.id == record_id)).first() is None:
        raise NotFound(kind, record_id)


def _find_permission_id(conn: Connection, resource: str, action: str) -> int | None:
    return conn.execute(
        select(_permissions.c.id).where((_permissions.c.resource == resource) & (_permissions.c.action == action))
    ).scalar()


def _load_user_roles(conn: Connection, user_ids: list[int]) -> dict[int, list[Role]]:
    """Expand user -> roles -> permissions for the given users in one SELECT."""
    if not user_ids:
        return {}
    stmt = (
        select(
            _user_roles.c.user_id,
            _roles.c.id.label("role_id"),
            _roles.c.name.label("role_name"),
            _roles.c.description.label("role_description"),
            _roles.c.created_at.label("role_created_at"),
            _roles.c.updated_at.label("role_updated_at"),
            _permissions.c.id.label("perm_id"),
            _permissions.c.resource,
            _permissions.c.action,
            _permissions.c.description.label("perm_description"),
            _permissions.c.created_at.label("perm_created_at"),
            _permissions.c.updated_at.label("perm_updated_at"),
        )
        .select_from(
            _user_roles.join(_roles, _roles.c.id == _user_roles.c.role_id)
            .outerjoin(_role_permissions, _role_permissions.c.role_id == _roles.c.id)
            .outerjoin(_permissions, _permissions.c.id == _role_permissions.c.permission_id)
        )
        .where(_user_roles.c.user_id.in_(user_ids))
        .order_by(_user_roles.c.user_id, _roles.c.name, _permissions.c.resource, _permissions.c.action)
    )
    by_user: dict[int, dict[int, Role]] = {}
    for row in conn.execute(stmt):
        roles = by_user.setdefault(row.user_id, {})
        role = roles.get(row.role_id)
        if role is None:
            role = Role(
                id=row.role_id,
                name=row.role_name,
                description=row.role_description,
                created_at=row.role_created_at,
                updated_at=row.role_updated_at,
            )
            roles[row.role_id] = role
        if row.perm_id is not None:
            role.permissions.append(
                Permission(
                    id=row.perm_id,
                    resource=row.resource,
                    action=row.action,
                    description=row.perm_description,
                    created_at=row.perm_created_at,
                    updated_at=row.perm_updated_at,
                )
            )
    return {uid: list(roles.values()) for uid, roles in by_user.items()}


def _load_role_permissions(conn: Connection, role_ids: list[int]) -> dict[int, list[Permission]]:
    if not role_ids:
        return {}
    stmt = (
        select(_role_permissions.c.role_id, _permissions)
        .select_from(_role_permissions.join(_permissions, _permissions.c.id == _role_permissions.c.permission_id))
        .where(_role_permissions.c.role_id.in_(role_ids))
        .order_by(_permissions.c.resource, _permissions.c.action)
    )
    result: dict[int, list[Permission]] = {}
    for row in conn.execute(stmt):
        result.setdefault(row.role_id, []).append(_row_to_permission(row))
    return result


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[Role]) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        full_name=row.full_name,
        roles=roles,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row, permissions: list[Permission]) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        permissions=permissions,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        resource=row.resource,
        action=row.action,
        description=row.description,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
