"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the taskapp API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Credential and token failures are flattened: one code, one message, no
    hint about which part of the credential was wrong.
  - Persistence failures are logged server-side and masked to a retry message.
"""

from __future__ import annotations

import enum


class AppError(Exception):

    # When set, the error handler also deletes both auth cookies.
    clear_cookies: bool = False

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            fields: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field   # single request field that caused the error
        self.fields      = fields  # every offending field -> message

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.fields:
            payload["fields"] = dict(self.fields)
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    INVALID_INPUT              = "INVALID_INPUT"
    MISSING_FIELD              = "MISSING_FIELD"
    VALIDATION_FAILED          = "VALIDATION_FAILED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = no usable access credential on a protected route
    # 403 = refresh credential rejected; both auth cookies are cleared
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    PERSISTENCE_ERROR          = "PERSISTENCE_ERROR"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Typed errors ───────────────────────────────────────────────────────────

class ConflictError(AppError):
    """Duplicate email and/or username. `fields` lists every collision."""

    def __init__(self, fields: dict[str, str]) -> None:
        code = (
            ErrorCode.DUPLICATE_EMAIL
            if "email" in fields
            else ErrorCode.DUPLICATE_USERNAME
        )
        super().__init__(
            code,
            "An account with these details already exists.",
            409,
            fields=fields,
        )


class CredentialsError(AppError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.INVALID_CREDENTIALS,
            "Invalid Credentials.",
            401,
        )


class PersistenceError(AppError):

    def __init__(self, clear_cookies: bool = False) -> None:
        super().__init__(
            ErrorCode.PERSISTENCE_ERROR,
            "Something went wrong, please try again later.",
            500,
        )
        self.clear_cookies = clear_cookies


class NotFoundError(AppError):

    def __init__(self, message: str = "Cannot find the user.") -> None:
        super().__init__(ErrorCode.USER_NOT_FOUND, message, 404)


class TokenErrorKind(str, enum.Enum):
    MISSING            = "missing"
    MALFORMED          = "malformed"
    EXPIRED            = "expired"
    REVOKED_OR_UNKNOWN = "revoked_or_unknown"


class TokenError(AppError):
    """
    Rejected access or refresh token.

    `kind` is for server-side logs only; it never reaches the client, which
    sees the same code and message for every kind. When `clear_cookies` is
    set the error handler also deletes both auth cookies.
    """

    def __init__(
            self,
            kind: TokenErrorKind,
            code: str = ErrorCode.TOKEN_INVALID,
            message: str = "The access token is invalid or has expired.",
            http_status: int = 401,
            clear_cookies: bool = False,
    ) -> None:
        super().__init__(code, message, http_status)
        self.kind          = kind
        self.clear_cookies = clear_cookies
