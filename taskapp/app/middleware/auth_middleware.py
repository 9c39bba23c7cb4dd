"""
middleware/auth_middleware.py — Access-token authentication decorator.

The @require_auth decorator:
  1. Reads the access token from the `access_token` cookie, falling back to
     an "Authorization: Bearer <token>" header
  2. Verifies the signature through the app's TokenIssuer
  3. Rejects refresh tokens and expired tokens
  4. Attaches user_id (int) to flask.g for the duration of the request
  5. Raises TokenError (401) if any step fails; the view never runs

Responsibility boundary:
  - This middleware authenticates only. It performs no data lookups.
  - Handlers receive user_id as a plain integer via flask.g.

Error codes:
  TOKEN_MISSING (401) — no cookie and no Authorization header
  TOKEN_INVALID (401) — malformed, tampered, wrong type, expired or bad subject.
                        One message for all of them; the kind is only logged.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from flask import g, request

from taskapp.app.errors import ErrorCode, TokenError, TokenErrorKind
from taskapp.app.extensions import token_issuer
from taskapp.app.security.cookies import ACCESS_COOKIE
from taskapp.app.security.tokens import ACCESS_TOKEN

logger = logging.getLogger(__name__)


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces access-token authentication.

    Usage:
        @bp.route("/private/user")
        @require_auth
        def user_data():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _extract_token() -> str | None:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token

    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _invalid(TokenErrorKind.MALFORMED)
    return parts[1]


def _invalid(kind: TokenErrorKind) -> TokenError:
    logger.info("Access token rejected: %s", kind.value)
    return TokenError(kind)


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Separated from the decorator wrapper so tests can call it inside a
    request context without a real view function.
    """
    raw_token = _extract_token()
    if not raw_token:
        raise TokenError(
            TokenErrorKind.MISSING,
            code=ErrorCode.TOKEN_MISSING,
            message="Authentication required. Log in to obtain an access token.",
        )

    issuer = token_issuer()
    try:
        claims = issuer.verify(raw_token)
    except TokenError as exc:
        raise _invalid(exc.kind) from exc

    if claims.token_type != ACCESS_TOKEN:
        raise _invalid(TokenErrorKind.MALFORMED)

    if claims.is_expired(issuer.now()):
        raise _invalid(TokenErrorKind.EXPIRED)

    try:
        user_id = int(claims.subject)
    except ValueError:
        raise _invalid(TokenErrorKind.MALFORMED)

    g.user_id = user_id
