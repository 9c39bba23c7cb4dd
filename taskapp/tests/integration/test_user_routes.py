"""
Integration tests for the /api/v1/user endpoints.

Exercise the whole request path: schema validation, SessionManager, the
SQLAlchemy credential store, cookie delivery and the global error handlers.
"""

from __future__ import annotations

import time

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError

from taskapp.app.extensions import db, token_issuer
from taskapp.app.models.refresh_token import RefreshTokenRecord
from taskapp.app.store.credential_store import SqlAlchemyCredentialStore

from .conftest import issuer_at, login, set_cookie_headers, signup

BASE = "/api/v1/user"


def _refresh_rows(app) -> int:
    with app.app_context():
        return db.session.execute(
            select(func.count()).select_from(RefreshTokenRecord)
        ).scalar_one()


def _user_id(app, username: str = "alice") -> int:
    with app.app_context():
        return db.session.execute(
            text("SELECT id FROM users WHERE username = :u"), {"u": username}
        ).scalar_one()


def _assert_cleared(resp):
    cookies = set_cookie_headers(resp)
    for name in ("access_token", "refresh_token"):
        assert name in cookies
        assert "Max-Age=0" in cookies[name]


# ═══════════════════════════════════════════════════════════════════════════
# POST /signup
# ═══════════════════════════════════════════════════════════════════════════

class TestSignup:

    def test_signup_sets_both_cookies(self, client):
        resp = client.post(f"{BASE}/signup", json={
            "email": "a@x.com", "username": "alice", "password": "Secr3t!",
        })

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert set(data) == {"access_token", "refresh_token"}

        cookies = set_cookie_headers(resp)
        assert cookies["access_token"].startswith(f"access_token={data['access_token']};")
        assert cookies["refresh_token"].startswith(f"refresh_token={data['refresh_token']};")
        for header in cookies.values():
            assert "HttpOnly" in header
            assert "Secure" in header
            assert "Path=/" in header

    def test_cookie_lifetimes_follow_token_ttls(self, client):
        resp = client.post(f"{BASE}/signup", json={
            "email": "a@x.com", "username": "alice", "password": "Secr3t!",
        })

        cookies = set_cookie_headers(resp)
        assert "Max-Age=5" in cookies["access_token"]
        assert "Max-Age=30" in cookies["refresh_token"]

    def test_signup_persists_one_refresh_claim(self, app, client):
        signup(client)
        assert _refresh_rows(app) == 1

    def test_password_is_never_returned(self, client):
        resp = client.post(f"{BASE}/signup", json={
            "email": "a@x.com", "username": "alice", "password": "Secr3t!",
        })
        assert "Secr3t!" not in resp.get_data(as_text=True)

    def test_duplicate_email_flags_email_only(self, client):
        signup(client)

        resp = client.post(f"{BASE}/signup", json={
            "email": "a@x.com", "username": "bob", "password": "Secr3t!",
        })

        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert set(error["fields"]) == {"email"}

    def test_duplicate_is_case_insensitive(self, client):
        signup(client)

        resp = client.post(f"{BASE}/signup", json={
            "email": "A@X.COM", "username": "ALICE", "password": "Secr3t!",
        })

        assert resp.status_code == 409
        assert set(resp.get_json()["error"]["fields"]) == {"email", "username"}

    def test_validation_lists_every_failing_field(self, client):
        resp = client.post(f"{BASE}/signup", json={
            "email": "not-an-email", "username": "a!", "password": "short",
        })

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "VALIDATION_FAILED"
        assert set(error["fields"]) == {"email", "username", "password"}

    def test_missing_field(self, client):
        resp = client.post(f"{BASE}/signup", json={
            "email": "a@x.com", "username": "alice",
        })

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "password"

    @pytest.mark.parametrize("kwargs", [
        {"data": "not json", "content_type": "text/plain"},
        {"data": "{broken", "content_type": "application/json"},
        {"json": ["a@x.com", "alice", "Secr3t!"]},
    ])
    def test_unparseable_body_is_invalid_input(self, client, kwargs):
        resp = client.post(f"{BASE}/signup", **kwargs)

        assert resp.status_code == 400
        assert resp.get_json()["error"] == {
            "code": "INVALID_INPUT",
            "message": "Please review your input.",
        }


# ═══════════════════════════════════════════════════════════════════════════
# POST /login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    @pytest.mark.parametrize("identity", ["alice", "a@x.com", "ALICE"])
    def test_login_by_email_or_username(self, client, identity):
        signup(client)

        resp = client.post(f"{BASE}/login", json={"identity": identity, "password": "Secr3t!"})

        assert resp.status_code == 200
        assert set(set_cookie_headers(resp)) == {"access_token", "refresh_token"}

    def test_wrong_password_matches_unknown_identity(self, client):
        signup(client)

        wrong = client.post(f"{BASE}/login", json={"identity": "alice", "password": "wrong"})
        unknown = client.post(f"{BASE}/login", json={"identity": "ghost", "password": "Secr3t!"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json() == {
            "error": {"code": "INVALID_CREDENTIALS", "message": "Invalid Credentials."},
        }
        assert "Set-Cookie" not in wrong.headers


# ═══════════════════════════════════════════════════════════════════════════
# GET /token
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:

    def test_refresh_sets_access_cookie_only(self, client):
        tokens = signup(client)
        client.set_cookie("refresh_token", tokens["refresh_token"])

        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert set(data) == {"access_token"}
        assert set(set_cookie_headers(resp)) == {"access_token"}

    def test_refreshed_token_opens_private_route(self, app, client):
        tokens = signup(client)
        client.set_cookie("refresh_token", tokens["refresh_token"])
        access = client.get(f"{BASE}/token").get_json()["data"]["access_token"]

        fresh = app.test_client()
        resp = fresh.get(
            f"{BASE}/private/user",
            headers={"Authorization": f"Bearer {access}"},
        )
        assert resp.status_code == 200

    def test_missing_refresh_cookie_is_forbidden(self, client):
        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"
        _assert_cleared(resp)

    def test_garbage_refresh_cookie_is_forbidden(self, client):
        client.set_cookie("refresh_token", "bad.token.here")

        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 403
        _assert_cleared(resp)

    def test_access_token_as_refresh_is_forbidden(self, client):
        tokens = signup(client)
        client.set_cookie("refresh_token", tokens["access_token"])

        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 403

    def test_expired_refresh_token_is_forbidden(self, app, client):
        tokens = signup(client)
        user_id = _user_id(app)
        stale_token, stale_claims = issuer_at(app, -3600).issue_refresh_token(str(user_id))
        with app.app_context():
            db.session.add(RefreshTokenRecord(
                user_id=user_id,
                issuer=stale_claims.issuer,
                issued_at=stale_claims.issued_at,
                expires_at=stale_claims.expires_at,
                token_id=stale_claims.token_id,
            ))
            db.session.commit()
        client.set_cookie("refresh_token", stale_token)

        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 403
        assert tokens["refresh_token"] != stale_token

    def test_unrecorded_refresh_token_is_forbidden(self, app, client):
        tokens = signup(client)
        with app.app_context():
            db.session.execute(text("DELETE FROM refresh_tokens"))
            db.session.commit()
        client.set_cookie("refresh_token", tokens["refresh_token"])

        resp = client.get(f"{BASE}/token")

        assert resp.status_code == 403
        _assert_cleared(resp)


# ═══════════════════════════════════════════════════════════════════════════
# POST /logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_logout_revokes_refresh_token(self, app, client):
        tokens = signup(client)
        client.set_cookie("refresh_token", tokens["refresh_token"])

        resp = client.post(f"{BASE}/logout")

        assert resp.status_code == 200
        assert resp.get_json()["data"] == {"message": "Logged out successfully."}
        _assert_cleared(resp)
        assert _refresh_rows(app) == 0

        client.set_cookie("refresh_token", tokens["refresh_token"])
        assert client.get(f"{BASE}/token").status_code == 403

    def test_logout_without_cookie_still_succeeds(self, client):
        resp = client.post(f"{BASE}/logout")

        assert resp.status_code == 200
        _assert_cleared(resp)

    def test_logout_leaves_same_second_session_alive(self, app, client, monkeypatch):
        pinned = float(int(time.time()))
        with app.app_context():
            monkeypatch.setattr(token_issuer(), "_clock", lambda: pinned)

        signup(client)
        first = login(client, "alice")
        second = login(client, "alice")
        assert _refresh_rows(app) == 3

        client.set_cookie("refresh_token", first["refresh_token"])
        assert client.post(f"{BASE}/logout").status_code == 200
        assert _refresh_rows(app) == 2

        client.set_cookie("refresh_token", second["refresh_token"])
        assert client.get(f"{BASE}/token").status_code == 200

        client.set_cookie("refresh_token", first["refresh_token"])
        assert client.get(f"{BASE}/token").status_code == 403

    def test_store_failure_on_logout_clears_cookies(self, app, client, monkeypatch):
        tokens = signup(client)

        def failing_delete(*args, **kwargs):
            raise OperationalError("DELETE", {}, Exception("server gone"))

        monkeypatch.setattr(SqlAlchemyCredentialStore, "delete_refresh_claim", failing_delete)
        client.set_cookie("refresh_token", tokens["refresh_token"])

        resp = client.post(f"{BASE}/logout")

        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "PERSISTENCE_ERROR"
        _assert_cleared(resp)


# ═══════════════════════════════════════════════════════════════════════════
# GET /private/user
# ═══════════════════════════════════════════════════════════════════════════

class TestPrivateUser:

    def test_access_cookie_authenticates(self, client):
        tokens = signup(client)
        client.set_cookie("access_token", tokens["access_token"])

        resp = client.get(f"{BASE}/private/user")

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["email"] == "a@x.com"
        assert data["username"] == "alice"
        assert "password_hash" not in data
        assert "password" not in data

    def test_bearer_header_authenticates(self, app, client):
        tokens = signup(client)

        resp = app.test_client().get(
            f"{BASE}/private/user",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )

        assert resp.status_code == 200
        assert resp.get_json()["data"]["username"] == "alice"

    def test_missing_token(self, client):
        resp = client.get(f"{BASE}/private/user")

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    @pytest.mark.parametrize("header", [
        "Bearer bad.token.here",
        "Token abc",
        "Bearer",
    ])
    def test_invalid_header(self, client, header):
        resp = client.get(f"{BASE}/private/user", headers={"Authorization": header})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_expired_access_token(self, app, client):
        signup(client)
        expired, _ = issuer_at(app, -3600).issue_access_token(str(_user_id(app)))

        resp = app.test_client().get(
            f"{BASE}/private/user",
            headers={"Authorization": f"Bearer {expired}"},
        )

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_refresh_token_is_not_an_access_token(self, app, client):
        tokens = signup(client)

        resp = app.test_client().get(
            f"{BASE}/private/user",
            headers={"Authorization": f"Bearer {tokens['refresh_token']}"},
        )

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_invalid_failures_share_one_message(self, app, client):
        tokens = signup(client)
        expired, _ = issuer_at(app, -3600).issue_access_token("1")
        messages = set()
        for token in (expired, tokens["refresh_token"], "bad.token.here"):
            resp = app.test_client().get(
                f"{BASE}/private/user",
                headers={"Authorization": f"Bearer {token}"},
            )
            messages.add(resp.get_json()["error"]["message"])

        assert len(messages) == 1

    def test_deleted_user_is_not_found(self, app, client):
        tokens = signup(client)
        with app.app_context():
            db.session.execute(text("DELETE FROM refresh_tokens"))
            db.session.execute(text("DELETE FROM users"))
            db.session.commit()

        resp = app.test_client().get(
            f"{BASE}/private/user",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "USER_NOT_FOUND"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get(f"{BASE}/nope")

    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "NOT_FOUND"


def test_full_session_flow(app, client):
    """signup → private → refresh → logout → refresh refused."""
    tokens = signup(client, email="b@y.com", username="bob", password="Hunter22")
    again = login(client, "b@y.com", password="Hunter22")
    assert again["access_token"]

    client.set_cookie("access_token", tokens["access_token"])
    assert client.get(f"{BASE}/private/user").status_code == 200

    client.set_cookie("refresh_token", tokens["refresh_token"])
    assert client.get(f"{BASE}/token").status_code == 200

    assert client.post(f"{BASE}/logout").status_code == 200
    client.set_cookie("refresh_token", tokens["refresh_token"])
    assert client.get(f"{BASE}/token").status_code == 403


def test_cross_origin_requests_get_no_cors_grant(client):
    resp = client.post(
        f"{BASE}/login",
        json={"identity": "ghost", "password": "Secr3t!"},
        headers={"Origin": "https://evil.example"},
    )

    assert "Access-Control-Allow-Origin" not in resp.headers
    assert "Access-Control-Allow-Credentials" not in resp.headers
