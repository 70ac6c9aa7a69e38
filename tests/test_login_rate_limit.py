"""
tests/test_login_rate_limit.py -- POST /api/v1/auth/login is rate limited per client IP.

Kept in its own module so the module-scoped api_client (and its freshly reset
limiter) is not shared with tests that need to log in.
"""

from __future__ import annotations


def test_login_rate_limit_returns_429(api_client):
    client, _token, _core = api_client
    body = {"email": "ghost@x.com", "password": "Whatever1!"}

    statuses = [client.post("/api/v1/auth/login", json=body).status_code for _ in range(10)]
    assert statuses == [401] * 10

    resp = client.post("/api/v1/auth/login", json=body)
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "rate_limited"
    assert "Retry-After" in resp.headers


def test_rate_limit_does_not_cover_refresh(api_client):
    client, _token, _core = api_client
    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "garbage"})
    assert resp.status_code == 401
