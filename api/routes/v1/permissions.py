"""
api/routes/v1/permissions.py -- Permission management endpoints.

Routes:
  GET    /api/v1/permissions        (permissions:read)
  GET    /api/v1/permissions/{id}   (permissions:read)
  POST   /api/v1/permissions        (permissions:write)
  PUT    /api/v1/permissions/{id}   (permissions:write)
  DELETE /api/v1/permissions/{id}   (permissions:write)

(resource, action) is unique: creating or renaming into an existing pair is a 409.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, PermissionCreate, PermissionResponse, PermissionUpdate
from auth.dependencies import require_permission
from auth.models import Permission
from auth.store import CredentialStore

router = APIRouter()

_read = [Depends(require_permission("permissions", "read"))]
_write = [Depends(require_permission("permissions", "write"))]


@router.get("/permissions", response_model=list[PermissionResponse], dependencies=_read)
def list_permissions(request: Request) -> list[PermissionResponse]:
    store: CredentialStore = request.app.state.store
    return [PermissionResponse.from_domain(p) for p in store.list_permissions()]


@router.get("/permissions/{permission_id}", response_model=PermissionResponse, dependencies=_read)
def get_permission(request: Request, permission_id: int) -> PermissionResponse:
    store: CredentialStore = request.app.state.store
    return PermissionResponse.from_domain(store.get_permission(permission_id))


@router.post("/permissions", response_model=PermissionResponse, status_code=201, dependencies=_write)
def create_permission(request: Request, body: PermissionCreate) -> PermissionResponse:
    store: CredentialStore = request.app.state.store
    perm_id = store.create_permission(
        Permission(resource=body.resource, action=body.action, description=body.description)
    )
    return PermissionResponse.from_domain(store.get_permission(perm_id))


@router.put("/permissions/{permission_id}", response_model=PermissionResponse, dependencies=_write)
def update_permission(request: Request, permission_id: int, body: PermissionUpdate) -> PermissionResponse:
    store: CredentialStore = request.app.state.store
    perm = store.update_permission(
        permission_id,
        resource=body.resource,
        action=body.action,
        description=body.description,
    )
    return PermissionResponse.from_domain(perm)


@router.delete("/permissions/{permission_id}", response_model=MessageResponse, dependencies=_write)
def delete_permission(request: Request, permission_id: int) -> MessageResponse:
    store: CredentialStore = request.app.state.store
    store.delete_permission(permission_id)
    return MessageResponse(message="Permission deleted successfully.")
