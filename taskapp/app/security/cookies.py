"""
security/cookies.py — Delivery of auth tokens as cookies.

Both cookies are HttpOnly, Secure (AUTH_COOKIE_SECURE) and scoped to "/".
Each cookie's lifetime matches the token it carries, so the browser drops it
when the token expires.
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Response, current_app

from taskapp.app.security.tokens import TokenClaims

ACCESS_COOKIE  = "access_token"
REFRESH_COOKIE = "refresh_token"


def _cookie_options() -> dict:
    return {
        "path":     "/",
        "secure":   bool(current_app.config.get("AUTH_COOKIE_SECURE", True)),
        "httponly": True,
        "samesite": current_app.config.get("AUTH_COOKIE_SAMESITE", "Lax"),
    }


def _set_token_cookie(
        response: Response,
        name: str,
        token: str,
        claims: TokenClaims,
) -> None:
    response.set_cookie(
        name,
        token,
        max_age=max(claims.expires_at - claims.issued_at, 0),
        expires=datetime.fromtimestamp(claims.expires_at, tz=timezone.utc),
        **_cookie_options(),
    )


def set_access_cookie(response: Response, token: str, claims: TokenClaims) -> None:
    _set_token_cookie(response, ACCESS_COOKIE, token, claims)


def set_auth_cookies(
        response: Response,
        access_token: str,
        access_claims: TokenClaims,
        refresh_token: str,
        refresh_claims: TokenClaims,
) -> None:
    _set_token_cookie(response, ACCESS_COOKIE, access_token, access_claims)
    _set_token_cookie(response, REFRESH_COOKIE, refresh_token, refresh_claims)


def clear_auth_cookies(response: Response) -> None:
    options = _cookie_options()
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, **options)
