"""
tests/test_api_routes.py -- Cross-cutting API behaviour.

These tests pin the contract every route shares rather than any one feature:
the error envelope, camelCase wire format and the handling of unknown routes
and unexpected failures.

Coverage:
  - Unknown route: 404 in the standard envelope
  - Wrong method: 405 in the standard envelope
  - Malformed JSON body: 400 validation_failed
  - Unexpected exception: 500 internal_error without leaking the message
  - Response bodies use camelCase keys and never carry password hashes

Fixtures used (from conftest.py):
  - api_env: module-scoped TestClient + stores
"""

from __future__ import annotations

from unittest.mock import patch

from conftest import ApiEnv, admin_token, auth_headers


class TestErrorEnvelope:
    def test_unknown_route(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get("/api/v1/does-not-exist")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "http_404"

    def test_wrong_method(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get("/api/v1/auth/login")
        assert resp.status_code == 405
        assert resp.json()["success"] is False

    def test_malformed_json(self, api_env: ApiEnv) -> None:
        resp = api_env.client.post(
            "/api/v1/auth/login",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    def test_unexpected_error_is_generic(self, api_env: ApiEnv) -> None:
        with patch.object(api_env.listings, "listing_stats", side_effect=RuntimeError("secret internals")):
            resp = api_env.client.get("/api/v1/property/stats")
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"]["code"] == "internal_error"
        assert "secret internals" not in resp.text


class TestWireFormat:
    def test_camel_case_and_no_hash(self, api_env: ApiEnv) -> None:
        token = admin_token(api_env.client)
        resp = api_env.client.get("/api/v1/auth/me", headers=auth_headers(token))
        user = resp.json()["user"]
        assert {"fullName", "phoneNo", "isVerified", "createdAt"} <= set(user)
        assert "full_name" not in user
        assert "hashedPassword" not in user
        assert "hashed_password" not in user

    def test_snake_case_input_is_accepted(self, api_env: ApiEnv) -> None:
        resp = api_env.client.post(
            "/api/v1/auth/signup",
            json={"full_name": "Snake Case", "email": "snake@example.com", "phone_no": "9844400001", "password": "abc123"},
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["user"]["fullName"] == "Snake Case"
