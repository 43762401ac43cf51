"""
api/routes/v1/roles.py -- Role management endpoints.

Routes:
  GET    /api/v1/roles                                   (roles:read)
  GET    /api/v1/roles/{id}                              (roles:read)
  POST   /api/v1/roles                                   (roles:write)
  PUT    /api/v1/roles/{id}                              (roles:write)
  DELETE /api/v1/roles/{id}                              (roles:write)
  POST   /api/v1/roles/{id}/permissions                  (roles:write)
  DELETE /api/v1/roles/{id}/permissions/{permission_id}  (roles:write)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, PermissionAssign, RoleCreate, RoleResponse, RoleUpdate
from auth.dependencies import require_permission
from auth.models import Role
from auth.store import CredentialStore

router = APIRouter()

_read = [Depends(require_permission("roles", "read"))]
_write = [Depends(require_permission("roles", "write"))]


@router.get("/roles", response_model=list[RoleResponse], dependencies=_read)
def list_roles(request: Request) -> list[RoleResponse]:
    store: CredentialStore = request.app.state.store
    return [RoleResponse.from_domain(r) for r in store.list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse, dependencies=_read)
def get_role(request: Request, role_id: int) -> RoleResponse:
    store: CredentialStore = request.app.state.store
    return RoleResponse.from_domain(store.get_role(role_id))


@router.post("/roles", response_model=RoleResponse, status_code=201, dependencies=_write)
def create_role(request: Request, body: RoleCreate) -> RoleResponse:
    store: CredentialStore = request.app.state.store
    role_id = store.create_role(Role(name=body.name, description=body.description))
    return RoleResponse.from_domain(store.get_role(role_id))


@router.put("/roles/{role_id}", response_model=RoleResponse, dependencies=_write)
def update_role(request: Request, role_id: int, body: RoleUpdate) -> RoleResponse:
    store: CredentialStore = request.app.state.store
    return RoleResponse.from_domain(store.update_role(role_id, name=body.name, description=body.description))


@router.delete("/roles/{role_id}", response_model=MessageResponse, dependencies=_write)
def delete_role(request: Request, role_id: int) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.delete_role(role_id)
    return MessageResponse(message="Role deleted successfully.")


@router.post("/roles/{role_id}/permissions", response_model=MessageResponse, dependencies=_write)
def add_permission_to_role(request: Request, role_id: int, body: PermissionAssign) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.add_permission_to_role(role_id, body.permission_id)
    return MessageResponse(message="Permission added to role successfully.")


@router.delete("/roles/{role_id}/permissions/{permission_id}", response_model=MessageResponse, dependencies=_write)
def remove_permission_from_role(request: Request, role_id: int, permission_id: int) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.remove_permission_from_role(role_id, permission_id)
    return MessageResponse(message="Permission removed from role successfully.")
