"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and database fields
  - No authentication required
  - Degraded status when the database stops answering
  - Unknown paths still answer in the error envelope
"""

from __future__ import annotations

from api.main import API_VERSION


def test_health_returns_ok(api_client):
    """Health endpoint returns 200 with status, version, and database."""
    client, _token, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": API_VERSION, "database": "ok"}


def test_health_no_auth_required(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_unavailable_database(api_client, monkeypatch):
    client, _, core = api_client
    monkeypatch.setattr(core.db, "ping", lambda: False)
    data = client.get("/api/v1/health").json()
    assert data["status"] == "degraded"
    assert data["database"] == "unavailable"


def test_unknown_path_uses_error_envelope(api_client):
    client, _, _ = api_client
    resp = client.get("/api/v1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"
