"""
api/routes/v1/users.py -- User account management endpoints.

Routes:
  GET    /api/v1/users                         -- list users            (users:read)
  GET    /api/v1/users/{id}                    -- one user              (users:read)
  POST   /api/v1/users                         -- create user           (users:write)
  PUT    /api/v1/users/{id}                    -- update user           (users:write)
  DELETE /api/v1/users/{id}                    -- delete user           (users:write)
  POST   /api/v1/users/{id}/roles              -- grant a role          (users:write)
  DELETE /api/v1/users/{id}/roles/{role_id}    -- revoke a role         (users:write)

NotFound (404) and DuplicateError (409) raised by the store propagate to the
exception handlers in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RoleAssign, UserCreate, UserResponse, UserUpdate
from auth.accounts import AccountService
from auth.dependencies import require_permission
from auth.store import CredentialStore

router = APIRouter()

_read = [Depends(require_permission("users", "read"))]
_write = [Depends(require_permission("users", "write"))]


@router.get("/users", response_model=list[UserResponse], dependencies=_read)
def list_users(request: Request) -> list[UserResponse]:
    store: CredentialStore = request.app.state.store
    return [UserResponse.from_domain(u) for u in store.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse, dependencies=_read)
def get_user(request: Request, user_id: int) -> UserResponse:
    store: CredentialStore = request.app.state.store
    return UserResponse.from_domain(store.get_user_by_id(user_id))


@router.post("/users", response_model=UserResponse, status_code=201, dependencies=_write)
def create_user(request: Request, body: UserCreate) -> UserResponse:
    """Create a user. The password is hashed before it reaches the store."""
    accounts: AccountService = request.app.state.accounts
    user = accounts.create_user(body.username, body.email, body.password, full_name=body.full_name)
    return UserResponse.from_domain(user)


@router.put("/users/{user_id}", response_model=UserResponse, dependencies=_write)
def update_user(request: Request, user_id: int, body: UserUpdate) -> UserResponse:
    accounts: AccountService = request.app.state.accounts
    user = accounts.update_user(
        user_id,
        username=body.username,
        email=body.email,
        password=body.password,
        full_name=body.full_name,
    )
    return UserResponse.from_domain(user)


@router.delete("/users/{user_id}", response_model=MessageResponse, dependencies=_write)
def delete_user(request: Request, user_id: int) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.delete_user(user_id)
    return MessageResponse(message="User deleted successfully.")


@router.post("/users/{user_id}/roles", response_model=MessageResponse, dependencies=_write)
def add_role_to_user(request: Request, user_id: int, body: RoleAssign) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.add_role_to_user(user_id, body.role_id)
    return MessageResponse(message="Role added to user successfully.")


@router.delete("/users/{user_id}/roles/{role_id}", response_model=MessageResponse, dependencies=_write)
def remove_role_from_user(request: Request, user_id: int, role_id: int) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.remove_role_from_user(user_id, role_id)
    return MessageResponse(message="Role removed from user successfully.")
