"""
routes/users.py — Account and session route handlers.

Layer rules:
  - Parse the request body (generic INVALID_INPUT if it is not a JSON object)
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service method
  - Set or clear auth cookies on the response
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. AppError propagates to the global error handler in
app/__init__.py; routes never catch it.

Endpoints (url_prefix=/api/v1/user):
  POST   /signup        → 200  sets access_token + refresh_token cookies
  POST   /login         → 200  sets access_token + refresh_token cookies
  GET    /token         → 200  sets access_token cookie only
  POST   /logout        → 200  clears both cookies
  GET    /private/user  → 200  (auth required)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from taskapp.app.errors import AppError, ErrorCode
from taskapp.app.extensions import db, password_hasher, token_issuer
from taskapp.app.middleware.auth_middleware import require_auth
from taskapp.app.schemas.auth_schema import LoginSchema, SignupSchema
from taskapp.app.security.cookies import (
    REFRESH_COOKIE,
    clear_auth_cookies,
    set_access_cookie,
    set_auth_cookies,
)
from taskapp.app.services import user_service
from taskapp.app.services.session_service import SessionManager, TokenPair
from taskapp.app.store.credential_store import SqlAlchemyCredentialStore

user_bp = Blueprint("user", __name__)


def _store() -> SqlAlchemyCredentialStore:
    return SqlAlchemyCredentialStore(db.session)


def _session_manager() -> SessionManager:
    return SessionManager(
        store=_store(),
        hasher=password_hasher(),
        issuer=token_issuer(),
    )


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise AppError(ErrorCode.INVALID_INPUT, "Please review your input.", 400)
    return body


def _token_response(tokens: TokenPair):
    response = jsonify({"data": tokens.to_dict(), "warnings": []})
    set_auth_cookies(
        response,
        tokens.access_token,
        tokens.access_claims,
        tokens.refresh_token,
        tokens.refresh_claims,
    )
    return response, 200


@user_bp.route("/signup", methods=["POST"])
def signup():
    """POST /user/signup — Create account; return tokens. (No auth required.)"""
    data = SignupSchema().load(_json_body())
    tokens = _session_manager().signup(
        email=data["email"],
        username=data["username"],
        password=data["password"],
    )
    return _token_response(tokens)


@user_bp.route("/login", methods=["POST"])
def login():
    """POST /user/login — Authenticate by email or username; return tokens."""
    data = LoginSchema().load(_json_body())
    tokens = _session_manager().login(
        identity=data["identity"],
        password=data["password"],
    )
    return _token_response(tokens)


@user_bp.route("/token", methods=["GET"])
def token():
    """GET /user/token — Exchange the refresh cookie for a new access token."""
    grant = _session_manager().refresh_access_token(request.cookies.get(REFRESH_COOKIE))
    response = jsonify({"data": grant.to_dict(), "warnings": []})
    set_access_cookie(response, grant.access_token, grant.access_claims)
    return response, 200


@user_bp.route("/logout", methods=["POST"])
def logout():
    """POST /user/logout — Revoke the refresh cookie and clear both cookies."""
    _session_manager().logout(request.cookies.get(REFRESH_COOKIE))
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    clear_auth_cookies(response)
    return response, 200


@user_bp.route("/private/user", methods=["GET"])
@require_auth
def user_data():
    """GET /user/private/user — Return the current user's record. (Auth required.)"""
    result = user_service.get_user_data(user_id=g.user_id, store=_store())
    return jsonify({"data": result, "warnings": []}), 200
