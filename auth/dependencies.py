"""
auth/dependencies.py -- FastAPI Depends() helpers: the request gate.

Flow for every protected route:
  1. Extract the token from "Authorization: Bearer <token>".
  2. Verify it with app.state.token_service (InvalidToken -> 401).
  3. Load the user through app.state.auth_service (gone -> 401, outage -> 503).
  4. For permission-gated routes, ask auth_service.has_permission (False -> 403).

The gate depends on AuthServiceInterface only, never on the store, so a test
can drop a fake implementation into app.state.auth_service.

Error mapping:
  InvalidToken     401  -- uniform; expired, tampered and malformed look alike
  NotFound         401  -- token is fine but the user was deleted since
  StorageFault     503  -- retryable, never reported as a missing user
  denied           403

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.authz import has_role
from auth.errors import InvalidToken, NotFound, StorageFault
from auth.models import User
from auth.service import AuthServiceInterface
from auth.tokens import TokenService

logger = logging.getLogger("rbacauth.auth")

_BEARER = "Bearer"


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": _BEARER},
    )


def _storage_unavailable() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={"code": "storage_unavailable", "message": "Service temporarily unavailable. Retry later."},
        headers={"Retry-After": "5"},
    )


def extract_bearer_token(header: str | None) -> str:
    """Return the token from a "Bearer <token>" header value or raise 401."""
    if not header:
        raise _unauthorized("missing_token", "Authorization header is required.")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != _BEARER or not parts[1]:
        raise _unauthorized("invalid_auth_header", "Authorization header format must be Bearer <token>.")
    return parts[1]


def get_auth_service(request: Request) -> AuthServiceInterface:
    return request.app.state.auth_service


def get_current_user(request: Request) -> User:
    """Require a valid bearer token for an existing user.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...

    The verified SessionClaims are kept on request.state.claims.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    token_service: TokenService = request.app.state.token_service
    try:
        claims = token_service.verify(token)
    except InvalidToken as exc:
        raise _unauthorized("invalid_token", exc.message) from None

    try:
        user = get_auth_service(request).get_user(claims.user_id)
    except NotFound:
        logger.info("Token for missing user id=%s rejected", claims.user_id)
        raise _unauthorized("unauthorized", "User not found.") from None
    except StorageFault:
        raise _storage_unavailable() from None

    request.state.claims = claims
    return user


def require_permission(resource: str, action: str) -> Callable[[Request], User]:
    """Build a dependency that requires (resource, action) on top of authentication.

    Use as a FastAPI dependency:
        @router.get("/users", dependencies=[Depends(require_permission("users", "read"))])
    """

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        try:
            allowed = get_auth_service(request).has_permission(user.id, resource, action)
        except NotFound:
            raise _unauthorized("unauthorized", "User not found.") from None
        except StorageFault:
            raise _storage_unavailable() from None
        if not allowed:
            logger.info("Denied %s:%s to user id=%s", resource, action, user.id)
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Permission denied."},
            )
        return user

    dependency.__name__ = f"require_permission_{resource}_{action}"
    return dependency


def require_role(role_name: str) -> Callable[[Request], User]:
    """Build a dependency that requires a role by exact name."""

    def dependency(request: Request) -> User:
        user = get_current_user(request)
        if not has_role(user, role_name):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Role required: {role_name}"},
            )
        return user

    dependency.__name__ = f"require_role_{role_name}"
    return dependency
