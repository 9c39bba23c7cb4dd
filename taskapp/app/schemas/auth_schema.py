"""
schemas/auth_schema.py — Marshmallow schemas for the signup and login bodies.

Validation responsibility:
  - This file: field types, lengths, formats, password policy.
  - services/session_service.py: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks
    (require a store lookup — not a schema concern).

Schemas inherit from marshmallow.Schema directly (not ma.Schema) so unit
tests can load them without an app.

Email and username are stripped and lower-cased on load, matching the case
policy of the credential store.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, post_load, validate, validates

from taskapp.app.security.passwords import MAX_PASSWORD_BYTES
from taskapp.app.store.credential_store import normalize_identity

MIN_PASSWORD_LENGTH = 6


class SignupSchema(Schema):
    """
    POST /user/signup

    Field rules:
      email    : valid email format, at most 255 chars
      username : 3–50 chars, letters, digits and underscore only
      password : 6+ chars and at most 72 bytes, at least one letter and one digit
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    username = fields.String(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    password = fields.String(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
            )
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes long."
            )
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")

    @post_load
    def normalize(self, data: dict, **kwargs) -> dict:
        data["email"] = normalize_identity(data["email"])
        data["username"] = normalize_identity(data["username"])
        return data


class LoginSchema(Schema):
    """
    POST /user/login

    `identity` is an email or a username. Credential correctness is checked
    in session_service.py (INVALID_CREDENTIALS, 401).
    """

    identity = fields.String(required=True, validate=validate.Length(min=1, max=255))
    password = fields.String(required=True, load_only=True)
