"""
security — password hashing, token signing and cookie delivery.

init_app(app) builds the process-wide TokenIssuer and PasswordHasher from the
app config exactly once, the same way extensions are bound in the factory.
Both objects are immutable afterwards and shared by every request thread.
"""

from __future__ import annotations

from flask import Flask

from taskapp.app.extensions import PASSWORD_HASHER_KEY, TOKEN_ISSUER_KEY
from taskapp.app.security.passwords import PasswordHasher
from taskapp.app.security.tokens import SigningKey, TokenIssuer


def init_app(app: Flask) -> None:
    app.extensions[TOKEN_ISSUER_KEY] = TokenIssuer(
        SigningKey.from_config(app.config),
        access_ttl=app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        refresh_ttl=app.config["JWT_REFRESH_TOKEN_EXPIRES"],
    )
    app.extensions[PASSWORD_HASHER_KEY] = PasswordHasher(
        rounds=app.config.get("BCRYPT_LOG_ROUNDS", 12),
    )
