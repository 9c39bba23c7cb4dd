"""
services/user_service.py — Read access to the authenticated user's record.

The user id comes from the access token (flask.g.user_id, set by
@require_auth) and is passed in as a plain int.
"""

from __future__ import annotations

from marshmallow import fields

from taskapp.app.errors import NotFoundError
from taskapp.app.extensions import ma
from taskapp.app.store.credential_store import CredentialStore


class UserSchema(ma.Schema):
    """Public view of a User. The password hash is never serialised."""

    id = fields.Integer()
    email = fields.String()
    username = fields.String()
    created_at = fields.DateTime()


_user_schema = UserSchema()


def get_user_data(user_id: int, store: CredentialStore) -> dict:
    """
    Returns the profile of the user behind a verified access token.

    Raises:
      NotFoundError(USER_NOT_FOUND, 404) — the token is valid but its user
        row is gone. This is a data problem, not an authentication failure.
    """
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return _user_schema.dump(user)
