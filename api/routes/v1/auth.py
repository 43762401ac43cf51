"""
api/routes/v1/auth.py -- Login and identity endpoints.

Routes:
  POST /api/v1/auth/login  -- password login; returns a bearer token
  GET  /api/v1/auth/me     -- current user, token claims and effective grants

Security:
  [H2] POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.login() provides timing equalization -- use it, never inline.
  [M5] Cache-Control: no-store on login responses.
  Unknown username and wrong password return the same 401 body.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MeResponse, UserResponse
from auth.authz import permissions_for
from auth.dependencies import get_auth_service, get_current_user
from auth.errors import InvalidCredentials
from auth.models import User
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login: public -- login endpoint must be unauthenticated
# - GET  /api/v1/auth/me:    requires auth (get_current_user)
router = APIRouter()


@limiter.limit(get_settings().login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a signed session token."""
    auth_service = get_auth_service(request)
    try:
        result = auth_service.login(body.username, body.password)
    except InvalidCredentials as exc:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": exc.message}},
        )
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            token_type=result.token_type,
            expires_in=result.expires_in,
            user=UserResponse.model_validate(result.user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the authenticated user, the claims of the presented token and the user's grants."""
    claims = request.state.claims
    return MeResponse(
        user=UserResponse.from_domain(current_user),
        issuer=claims.issuer,
        issued_at=claims.issued_at.isoformat(),
        expires_at=claims.expires_at.isoformat(),
        permissions=sorted(f"{resource}:{action}" for resource, action in permissions_for(current_user)),
    )
