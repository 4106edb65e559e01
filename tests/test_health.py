"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - both store components present and reporting 'ok'
  - No authentication required
  - A failing store degrades the status instead of erroring
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from api.main import API_VERSION


def test_health_returns_200_with_components(api_env):
    resp = api_env.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["version"] == API_VERSION
    assert data["components"] == {"account_store": "ok", "listing_store": "ok"}


def test_health_no_auth_required(api_env):
    resp = api_env.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_health_reports_degraded_store(api_env):
    failure = OperationalError("SELECT 1", {}, Exception("database is locked"))
    with patch.object(api_env.listings, "ping", side_effect=failure):
        resp = api_env.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["components"]["listing_store"] == "error"
    assert data["components"]["account_store"] == "ok"
