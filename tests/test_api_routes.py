"""
tests/test_api_routes.py -- Integration tests for the HTTP adapter.

These tests exercise the full stack: FastAPI routing -> auth dependency ->
AuthenticationService / TenantService -> stores -> response model
serialization -> the error envelope.

Coverage:
  - Auth failures: 401 without or with a malformed Bearer header
  - Tenants: create 201 with ledger, duplicate 409, list, detail, cross-tenant 403
  - Users: create 201 with one-time default password, cross-tenant 403, set-password
  - Login / refresh / me happy paths; invalid credentials 401 with generic body
  - Bootstrap 409 once a super admin exists; emergency reset
  - Request validation failures answer 400 in the error envelope

Fixtures used (from conftest.py):
  - api_client: (client, token, core) -- token is the bootstrapped super admin's
    access token (root@example.com / RootPass123!).

The login route is rate limited; this module stays well under the limit.
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import ADMIN_EMAIL, ADMIN_PASSWORD, BOOTSTRAP_SECRET, DEFAULT_PASSWORD, RESET_SECRET


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _create_tenant(client: TestClient, token: str, code: str, email: str):
    return client.post("/api/v1/tenants", json={"code": code, "name": f"{code} Ltd", "email": email}, headers=_auth(token))


class TestApiAuthFailure:
    """Protected routes without a valid Bearer token must answer 401 in the envelope."""

    def test_me_unauthenticated(self, api_client) -> None:
        client, _token, _core = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "auth_failed"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_lowercase_scheme_rejected(self, api_client) -> None:
        client, token, _core = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 401

    def test_garbage_token_rejected(self, api_client) -> None:
        client, _token, _core = api_client
        resp = client.post("/api/v1/tenants", json={"code": "NOPE", "name": "No", "email": "n@x.com"}, headers=_auth("x.y.z"))
        assert resp.status_code == 401

    def test_list_tenants_requires_super_admin(self, api_client) -> None:
        client, _token, core = api_client
        from auth.models import COMPANY_ADMIN, TokenClaims

        token = core.tokens.issue_token_pair(
            TokenClaims(user_id=999, email="x@x.com", tenant_id=1, roles=(COMPANY_ADMIN,))
        ).access_token
        resp = client.get("/api/v1/tenants", headers=_auth(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "insufficient_permissions"


class TestApiTenantRoutes:
    def test_create_tenant(self, api_client) -> None:
        client, token, _core = api_client
        resp = _create_tenant(client, token, "ACME", "acme@x.com")
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["tenant"]["code"] == "ACME"
        assert data["tenant"]["default_currency"] == "EGP"
        assert data["tenant"]["minimum_balance"] in ("0", "0.00")
        assert data["ledger"]["tenant_id"] == data["tenant"]["id"]

    def test_duplicate_code_conflicts(self, api_client) -> None:
        client, token, core = api_client
        _create_tenant(client, token, "DUPE", "dupe@x.com")
        before = core.tenant_store.count_ledgers()
        resp = _create_tenant(client, token, "DUPE", "other-dupe@x.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"
        assert core.tenant_store.count_ledgers() == before

    def test_invalid_code_is_400_with_field_detail(self, api_client) -> None:
        client, token, _core = api_client
        resp = _create_tenant(client, token, "lower", "lower@x.com")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert "code:" in error["detail"]

    def test_list_and_get_tenant(self, api_client) -> None:
        client, token, _core = api_client
        created = _create_tenant(client, token, "LISTME", "listme@x.com").json()["tenant"]
        listed = client.get("/api/v1/tenants", headers=_auth(token))
        assert listed.status_code == 200
        assert listed.json()[0]["code"] == "LISTME"

        detail = client.get(f"/api/v1/tenants/{created['id']}", headers=_auth(token))
        assert detail.status_code == 200
        assert detail.json()["email"] == "listme@x.com"

    def test_get_unknown_tenant(self, api_client) -> None:
        client, token, _core = api_client
        resp = client.get("/api/v1/tenants/424242", headers=_auth(token))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestApiUserRoutes:
    def test_create_user_login_and_cross_tenant(self, api_client) -> None:
        client, token, _core = api_client
        tenant_a = _create_tenant(client, token, "TENANT_A", "a@tenants.test").json()["tenant"]
        tenant_b = _create_tenant(client, token, "TENANT_B", "b@tenants.test").json()["tenant"]

        resp = client.post(
            "/api/v1/users",
            json={"tenant_id": tenant_a["id"], "email": "Boss@A.test", "display_name": "Boss A"},
            headers=_auth(token),
        )
        assert resp.status_code == 201, resp.text
        created = resp.json()
        assert created["user"]["email"] == "boss@a.test"
        assert created["user"]["roles"] == ["COMPANY_ADMIN"]
        assert created["default_password"] == DEFAULT_PASSWORD
        assert "password_hash" not in created["user"]

        login = client.post("/api/v1/auth/login", json={"email": "boss@a.test", "password": DEFAULT_PASSWORD})
        assert login.status_code == 200, login.text
        assert login.headers["Cache-Control"] == "no-store"
        boss_token = login.json()["tokens"]["access_token"]

        # Company admin of A may not create users in B, even though B exists and is active.
        resp = client.post(
            "/api/v1/users",
            json={"tenant_id": tenant_b["id"], "email": "spy@b.test", "display_name": "Spy"},
            headers=_auth(boss_token),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "cross_tenant"

        # ...and may not read B either.
        assert client.get(f"/api/v1/tenants/{tenant_b['id']}", headers=_auth(boss_token)).status_code == 403
        assert client.get(f"/api/v1/tenants/{tenant_a['id']}", headers=_auth(boss_token)).status_code == 200

        # The super admin can.
        resp = client.post(
            "/api/v1/users",
            json={"tenant_id": tenant_b["id"], "email": "spy@b.test", "display_name": "Spy"},
            headers=_auth(token),
        )
        assert resp.status_code == 201

    def test_set_password(self, api_client) -> None:
        client, token, _core = api_client
        tenant = _create_tenant(client, token, "PWD", "pwd@x.com").json()["tenant"]
        user = client.post(
            "/api/v1/users",
            json={"tenant_id": tenant["id"], "email": "pwd@user.test", "display_name": "Pwd User"},
            headers=_auth(token),
        ).json()["user"]

        weak = client.post(
            "/api/v1/users/set-password", json={"user_id": user["id"], "new_password": "weak"}, headers=_auth(token)
        )
        assert weak.status_code == 400
        assert "password" in weak.json()["error"]["detail"]

        # 44 characters fits the request model but is 84 bytes of UTF-8.
        oversize = client.post(
            "/api/v1/users/set-password",
            json={"user_id": user["id"], "new_password": "Aa1!" + "\u00e9" * 40},
            headers=_auth(token),
        )
        assert oversize.status_code == 400
        assert "72 bytes" in oversize.json()["error"]["detail"]

        resp = client.post(
            "/api/v1/users/set-password",
            json={"user_id": user["id"], "new_password": "Changed123!"},
            headers=_auth(token),
        )
        assert resp.status_code == 200
        assert resp.json()["is_locked"] is False

    def test_malformed_body_is_400(self, api_client) -> None:
        client, token, _core = api_client
        resp = client.post("/api/v1/users", json={"email": "x@y.com"}, headers=_auth(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


class TestApiLoginRoutes:
    def test_login_refresh_me(self, api_client) -> None:
        client, _token, _core = api_client
        login = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        assert login.status_code == 200, login.text
        body = login.json()
        assert body["user"]["roles"] == ["SUPER_ADMIN"]
        assert body["tokens"]["token_type"] == "Bearer"
        assert body["tokens"]["expires_in"] == "60m"

        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": body["tokens"]["refresh_token"]})
        assert refreshed.status_code == 200
        new_access = refreshed.json()["access_token"]

        me = client.get("/api/v1/auth/me", headers=_auth(new_access))
        assert me.status_code == 200
        assert me.json() == {"user_id": body["user"]["id"], "email": ADMIN_EMAIL, "tenant_id": None, "roles": ["SUPER_ADMIN"]}

    def test_bad_credentials_are_generic(self, api_client) -> None:
        client, _token, _core = api_client
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@x.com", "password": "Whatever1!"})
        wrong = client.post("/api/v1/auth/login", json={"email": "boss@a.test", "password": "Whatever1!"})
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json()

    def test_invalid_refresh_token(self, api_client) -> None:
        client, _token, _core = api_client
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
        assert resp.status_code == 401


class TestApiOperatorRoutes:
    def test_second_bootstrap_conflicts(self, api_client) -> None:
        client, _token, _core = api_client
        resp = client.post("/api/v1/bootstrap/super-admin", json={"secret": BOOTSTRAP_SECRET, "email": "two@x.com"})
        assert resp.status_code == 409

    def test_bootstrap_wrong_secret(self, api_client) -> None:
        client, _token, _core = api_client
        resp = client.post("/api/v1/bootstrap/super-admin", json={"secret": "wrong"})
        assert resp.status_code == 401

    def test_reset_super_admin_password(self, api_client) -> None:
        client, _token, core = api_client
        resp = client.post(
            "/api/v1/admin/reset-super-admin-password",
            json={"secret": RESET_SECRET, "email": ADMIN_EMAIL, "new_password": ADMIN_PASSWORD},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["roles"] == ["SUPER_ADMIN"]
        assert core.user_store.get_user_by_email(ADMIN_EMAIL).failed_login_attempts == 0
