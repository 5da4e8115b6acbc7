"""
tests/test_login_route.py -- Integration tests for POST /api/v1/auth/login.

These tests run through the real ASGI stack so the ordering guarantee
(governor before credential check) is exercised end to end.

Coverage:
  - Valid login: 200, token, principal payload, httpOnly cookie, no-store
  - Bad credentials: uniform 401 for unknown email and wrong password
  - Throttling: 10 admitted attempts, 11th is 429 with Retry-After, even with
    the correct password; window reopens after 15 minutes
  - A denied attempt never reaches authenticate_user()
  - Structurally broken ownership data: generic 403
  - Reset-on-success policy switch

Fixtures used (from conftest.py):
  - api_client: (client, store, hierarchy); every seeded password is PASSWORD
  - fresh_governor: (governor, clock) installed on app.state for one test
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import api.routes.v1.auth as auth_routes
from auth.models import Role, User
from auth.tokens import hash_password
from conftest import PASSWORD

LOGIN = "/api/v1/auth/login"


def _login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post(LOGIN, json={"email": email, "password": password})


class TestLoginSuccess:
    def test_valid_login_returns_token_and_principal(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        resp = _login(client, h.emails[h.professional])
        assert resp.status_code == 200
        data = resp.json()
        assert data["access_token"]
        assert data["token_type"] == "bearer"
        assert data["user"]["id"] == h.professional
        assert data["user"]["role"] == "PROFESSIONAL"
        assert data["user"]["supervisor_id"] == h.supervisor
        assert "hashed_password" not in data["user"]
        assert resp.headers["cache-control"] == "no-store"
        assert "access_token=" in resp.headers["set-cookie"]
        assert "httponly" in resp.headers["set-cookie"].lower()

    def test_token_authenticates_me(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        token = _login(client, h.emails[h.supervisor]).json()["access_token"]
        client.cookies.clear()
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == h.supervisor
        assert me.json()["supervisor_id"] is None

    def test_successful_login_stamps_last_login(self, api_client, fresh_governor) -> None:
        client, store, h = api_client
        _login(client, h.emails[h.unassigned_patient])
        assert store.get_by_id(h.unassigned_patient).last_login


class TestLoginFailure:
    def test_wrong_password_and_unknown_email_look_the_same(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        wrong = _login(client, h.emails[h.patient], "not-the-password")
        unknown = _login(client, "ghost@clinic.test")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "bad_credentials"

    def test_malformed_body_is_422(self, api_client, fresh_governor) -> None:
        client, _store, _h = api_client
        resp = client.post(LOGIN, json={"email": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_broken_ownership_data_is_generic_403(self, api_client, fresh_governor) -> None:
        client, store, h = api_client
        # Patient pointing at a professional: depth > 2.
        store.create_user(
            User(
                email="nested-login@clinic.test",
                name="nested",
                role=Role.PATIENT.value,
                supervisor_id=h.professional,
                hashed_password=hash_password(PASSWORD),
            )
        )
        resp = _login(client, "nested-login@clinic.test")
        assert resp.status_code == 403
        assert resp.json()["error"] == {"code": "forbidden", "message": "Access denied.", "detail": None}
        assert "access_token" not in resp.headers.get("set-cookie", "")


class TestLoginThrottling:
    def test_eleventh_attempt_is_rate_limited(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        for i in range(10):
            resp = _login(client, h.emails[h.patient], PASSWORD if i % 2 else "wrong")
            assert resp.status_code in (200, 401)

        resp = _login(client, h.emails[h.patient])
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "900"
        body = resp.json()["error"]
        assert body["code"] == "rate_limited"
        assert body["detail"] == "Retry after 15 minute(s)."

    def test_denial_shape_is_identical_for_any_account(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        for _ in range(10):
            _login(client, "ghost@clinic.test")
        known = _login(client, h.emails[h.supervisor])
        unknown = _login(client, "ghost@clinic.test")
        assert known.status_code == unknown.status_code == 429
        assert known.json() == unknown.json()

    def test_retry_after_counts_down(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        _governor, clock = fresh_governor
        for _ in range(10):
            _login(client, "ghost@clinic.test")
        clock.advance(6 * 60)
        resp = _login(client, h.emails[h.patient])
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == str(9 * 60)

    def test_window_reopens_after_fifteen_minutes(self, api_client, fresh_governor) -> None:
        client, _store, h = api_client
        _governor, clock = fresh_governor
        for _ in range(11):
            _login(client, "ghost@clinic.test")
        clock.advance(16 * 60)
        assert _login(client, h.emails[h.patient]).status_code == 200

    def test_denied_attempt_never_verifies_credentials(self, api_client, fresh_governor, monkeypatch) -> None:
        client, _store, h = api_client
        spy = MagicMock(wraps=auth_routes.authenticate_user)
        monkeypatch.setattr(auth_routes, "authenticate_user", spy)
        for _ in range(10):
            _login(client, h.emails[h.patient], "wrong")
        assert spy.call_count == 10

        assert _login(client, h.emails[h.patient]).status_code == 429
        assert spy.call_count == 10

    @pytest.mark.parametrize("reset_on_success, expected", [(True, 1), (False, 3)])
    def test_reset_on_success_policy(self, api_client, fresh_governor, monkeypatch, reset_on_success, expected):
        client, _store, h = api_client
        governor, _clock = fresh_governor
        monkeypatch.setattr(auth_routes._settings, "login_reset_on_success", reset_on_success)
        _login(client, h.emails[h.patient], "wrong")
        _login(client, h.emails[h.patient])
        _login(client, h.emails[h.patient], "wrong")
        assert governor.peek("ip:testclient").count == expected
