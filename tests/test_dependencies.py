"""
tests/test_dependencies.py -- Request gate tests against a fake auth service.

auth/dependencies.py only talks to app.state.auth_service through
AuthServiceInterface, so these tests mount the gate on a tiny FastAPI app
with an in-memory fake and never touch a database.

Covers:
  - Header parsing: missing, wrong scheme, extra parts -> 401
  - Invalid token -> 401 with WWW-Authenticate: Bearer
  - Valid token for a deleted user -> 401; store outage -> 503 (not 401)
  - Permission granted -> 200; denied -> 403
  - Role gate
"""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from auth.authz import user_has_permission
from auth.dependencies import extract_bearer_token, get_current_user, require_permission, require_role
from auth.errors import NotFound, StorageFault
from auth.models import LoginResult, Permission, Role, User
from auth.tokens import TokenService


class FakeAuthService:
    """In-memory AuthServiceInterface."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.down = False

    def add(self, user: User) -> User:
        self.users[user.id] = user
        return user

    def get_user(self, user_id: int) -> User:
        if self.down:
            raise StorageFault()
        if user_id not in self.users:
            raise NotFound("user", user_id)
        return self.users[user_id]

    def has_permission(self, user_id: int, resource: str, action: str) -> bool:
        return user_has_permission(self.get_user(user_id), resource, action)

    def login(self, username: str, password: str) -> LoginResult:
        raise NotImplementedError


@pytest.fixture
def fake() -> FakeAuthService:
    svc = FakeAuthService()
    svc.add(
        User(
            id=1,
            username="viewer",
            email="viewer@example.com",
            roles=[Role(name="viewer", permissions=[Permission(resource="reports", action="read")])],
        )
    )
    svc.add(User(id=2, username="nobody", email="nobody@example.com", roles=[]))
    return svc


@pytest.fixture
def client(fake: FakeAuthService, tokens: TokenService) -> TestClient:
    app = FastAPI()
    app.state.auth_service = fake
    app.state.token_service = tokens

    @app.get("/whoami")
    def whoami(request: Request, user: User = Depends(get_current_user)) -> dict:
        return {"username": user.username, "claims_user_id": request.state.claims.user_id}

    @app.get("/reports", dependencies=[Depends(require_permission("reports", "read"))])
    def reports() -> dict:
        return {"ok": True}

    @app.get("/viewer-only", dependencies=[Depends(require_role("viewer"))])
    def viewer_only() -> dict:
        return {"ok": True}

    return TestClient(app)


def _bearer(tokens: TokenService, user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {tokens.issue(user_id, f'u{user_id}@example.com')}"}


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------


class TestExtractBearerToken:
    def test_valid(self) -> None:
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing(self, header) -> None:
        with pytest.raises(HTTPException) as excinfo:
            extract_bearer_token(header)
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail["code"] == "missing_token"

    @pytest.mark.parametrize("header", ["abc.def.ghi", "Basic abc", "bearer abc", "Bearer", "Bearer a b"])
    def test_malformed(self, header: str) -> None:
        with pytest.raises(HTTPException) as excinfo:
            extract_bearer_token(header)
        assert excinfo.value.status_code == 401
        assert excinfo.value.detail["code"] == "invalid_auth_header"
        assert excinfo.value.headers["WWW-Authenticate"] == "Bearer"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuthentication:
    def test_valid_token(self, client: TestClient, tokens: TokenService) -> None:
        resp = client.get("/whoami", headers=_bearer(tokens, 1))
        assert resp.status_code == 200
        assert resp.json() == {"username": "viewer", "claims_user_id": 1}

    def test_no_header(self, client: TestClient) -> None:
        resp = client.get("/whoami")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client: TestClient) -> None:
        resp = client.get("/whoami", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.json()["detail"]["code"] == "invalid_token"

    def test_token_for_deleted_user(self, client: TestClient, tokens: TokenService) -> None:
        resp = client.get("/whoami", headers=_bearer(tokens, 99))
        assert resp.status_code == 401
        assert resp.json()["detail"]["message"] == "User not found."

    def test_store_outage_is_503(self, client: TestClient, fake: FakeAuthService, tokens: TokenService) -> None:
        fake.down = True
        resp = client.get("/whoami", headers=_bearer(tokens, 1))
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "storage_unavailable"
        assert "retry-after" in resp.headers


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    def test_permission_granted(self, client: TestClient, tokens: TokenService) -> None:
        assert client.get("/reports", headers=_bearer(tokens, 1)).status_code == 200

    def test_permission_denied(self, client: TestClient, tokens: TokenService) -> None:
        resp = client.get("/reports", headers=_bearer(tokens, 2))
        assert resp.status_code == 403
        assert resp.json()["detail"] == {"code": "forbidden", "message": "Permission denied."}

    def test_permission_gate_requires_auth_first(self, client: TestClient) -> None:
        assert client.get("/reports").status_code == 401

    def test_role_granted(self, client: TestClient, tokens: TokenService) -> None:
        assert client.get("/viewer-only", headers=_bearer(tokens, 1)).status_code == 200

    def test_role_denied(self, client: TestClient, tokens: TokenService) -> None:
        resp = client.get("/viewer-only", headers=_bearer(tokens, 2))
        assert resp.status_code == 403
        assert resp.json()["detail"]["message"] == "Role required: viewer"
