"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
  - Tests run against in-memory SQLite by default; set TEST_DATABASE_URL to
    run the same suite against PostgreSQL.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - signup(client, ...)        → response data dict with both tokens
  - login(client, ...)         → response data dict with both tokens
  - set_cookie_names(resp)     → names of cookies set by a response
  - issuer_at(app, offset)     → TokenIssuer sharing the app's key, clock shifted

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import time

import pytest

from taskapp.app import create_app
from taskapp.app.extensions import db as _db
from taskapp.app.extensions import token_issuer
from taskapp.app.security.tokens import SigningKey, TokenIssuer


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test. refresh_tokens goes first (FK → users).
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        from sqlalchemy import text
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client and cookie jar."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def signup(
    client,
    email: str = "a@x.com",
    username: str = "alice",
    password: str = "Secr3t!",
) -> dict:
    """
    Signs up a new user and returns the response data dict.
    Returns: {"access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/user/signup",
        json={"email": email, "username": username, "password": password},
    )
    assert resp.status_code == 200, f"signup failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, identity: str, password: str = "Secr3t!") -> dict:
    resp = client.post(
        "/api/v1/user/login",
        json={"identity": identity, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def set_cookie_headers(resp) -> dict[str, str]:
    """Maps cookie name → raw Set-Cookie header for every cookie the response sets."""
    headers = {}
    for header in resp.headers.getlist("Set-Cookie"):
        name = header.split("=", 1)[0]
        headers[name] = header
    return headers


def issuer_at(app, offset_seconds: float) -> TokenIssuer:
    """A TokenIssuer with the app's signing key and TTLs whose clock is shifted."""
    with app.app_context():
        live = token_issuer()
    return TokenIssuer(
        SigningKey.from_config(app.config),
        access_ttl=live.access_ttl,
        refresh_ttl=live.refresh_ttl,
        clock=lambda: time.time() + offset_seconds,
    )
