"""
API request and response models for the RBAC auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
UserResponse has no password field at all -- there is nothing to forget to strip.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Permission, Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Deliberately loose: one "@", no whitespace. Deliverability is not our problem.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"

# resource / action names: lowercase-ish identifiers like "users", "read", "audit-log".
NAME_PATTERN = r"^[A-Za-z0-9_.:-]+$"


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Errors / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class PermissionResponse(BaseModel):
    id: int
    resource: str
    action: str
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, perm: Permission) -> "PermissionResponse":
        return cls(
            id=perm.id,
            resource=perm.resource,
            action=perm.action,
            description=perm.description,
            created_at=perm.created_at,
            updated_at=perm.updated_at,
        )


class RoleResponse(BaseModel):
    id: int
    name: str
    description: str = ""
    permissions: list[PermissionResponse] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=[PermissionResponse.from_domain(p) for p in role.permissions],
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class UserResponse(BaseModel):
    """Sanitized user projection. Never carries the password digest."""

    id: int
    username: str
    email: str
    full_name: str = ""
    roles: list[RoleResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            roles=[RoleResponse.from_domain(r) for r in user.roles or []],
        )


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user: UserResponse


class MeResponse(BaseModel):
    """GET /api/v1/auth/me: the caller, the claims of the token they used, and their effective grants."""

    user: UserResponse
    issuer: str
    issued_at: str
    expires_at: str
    permissions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """POST /users. The password is taken byte for byte; only the identity fields are trimmed."""

    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)
    full_name: str = Field(default="", max_length=255)

    @field_validator("username", "email", "full_name", mode="before")
    @classmethod
    def strip_identity_fields(cls, v):
        return _strip(v)


class UserUpdate(BaseModel):
    """PUT /users/{id}. Omitted fields are left unchanged."""

    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("username", "email", "full_name", mode="before")
    @classmethod
    def strip_identity_fields(cls, v):
        return _strip(v)


class RoleAssign(BaseModel):
    role_id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    description: str = Field(default="", max_length=1000)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    description: Optional[str] = Field(default=None, max_length=1000)


class PermissionAssign(BaseModel):
    permission_id: int = Field(gt=0)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class PermissionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    resource: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    action: str = Field(min_length=1, max_length=100, pattern=NAME_PATTERN)
    description: str = Field(default="", max_length=1000)


class PermissionUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    resource: Optional[str] = Field(default=None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    action: Optional[str] = Field(default=None, min_length=1, max_length=100, pattern=NAME_PATTERN)
    description: Optional[str] = Field(default=None, max_length=1000)
