"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from taskapp.app.extensions import db, ma

The token issuer and password hasher are built once per app from its config
(see app/security/__init__.py) and stored in app.extensions; the accessors
below fetch them for the current app.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app
from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

if TYPE_CHECKING:  # pragma: no cover
    from taskapp.app.security.passwords import PasswordHasher
    from taskapp.app.security.tokens import TokenIssuer

db = SQLAlchemy()

# Request-validation schemas (app/schemas/) inherit from marshmallow.Schema
# directly so they stay usable in unit tests without an app. `ma` is used
# for output serialisation only.
ma = Marshmallow()

TOKEN_ISSUER_KEY    = "taskapp.token_issuer"
PASSWORD_HASHER_KEY = "taskapp.password_hasher"


def token_issuer() -> "TokenIssuer":
    return current_app.extensions[TOKEN_ISSUER_KEY]


def password_hasher() -> "PasswordHasher":
    return current_app.extensions[PASSWORD_HASHER_KEY]
