"""
services/session_service.py — Signup, login, token refresh and logout.

Responsibilities:
  - Uniqueness checks and user creation (signup)
  - Credential verification (login)
  - Access / refresh token issuance and refresh-claim persistence
  - Refresh-token validation against the persisted claim triple
  - Refresh-claim deletion (logout)

Layer rules:
  - No imports from routes or schemas; no flask.request, flask.g or HTTP.
  - Collaborators (store, hasher, issuer) are injected at construction.
  - Errors are raised as AppError subclasses; the global handler turns them
    into responses. Nothing here returns an error value.

Refresh design:
  - The refresh token is NOT rotated on use. It stays valid until it expires
    or its claim row is deleted on logout.
  - Every refresh failure is the same 403 REFRESH_TOKEN_INVALID with both
    auth cookies cleared. The failure kind is logged, never returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from taskapp.app.errors import (
    ConflictError,
    CredentialsError,
    ErrorCode,
    PersistenceError,
    TokenError,
    TokenErrorKind,
)
from taskapp.app.security.passwords import PasswordHasher
from taskapp.app.security.tokens import REFRESH_TOKEN, TokenClaims, TokenIssuer
from taskapp.app.store.credential_store import CredentialStore, find_conflicts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    access_claims: TokenClaims
    refresh_token: str
    refresh_claims: TokenClaims

    def to_dict(self) -> dict:
        return {
            "access_token":  self.access_token,
            "refresh_token": self.refresh_token,
        }


@dataclass(frozen=True)
class AccessGrant:
    access_token: str
    access_claims: TokenClaims

    def to_dict(self) -> dict:
        return {"access_token": self.access_token}


def _refresh_forbidden(kind: TokenErrorKind) -> TokenError:
    return TokenError(
        kind,
        code=ErrorCode.REFRESH_TOKEN_INVALID,
        message="The refresh token is invalid, expired, or has been revoked.",
        http_status=403,
        clear_cookies=True,
    )


class SessionManager:

    def __init__(
            self,
            store: CredentialStore,
            hasher: PasswordHasher,
            issuer: TokenIssuer,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._issuer = issuer

    # ── Signup ─────────────────────────────────────────────────────────────

    def signup(self, email: str, username: str, password: str) -> TokenPair:
        """
        Creates a user and issues an access + refresh token pair.

        Input must already have passed SignupSchema.

        Raises:
          ConflictError     — email and/or username taken; every conflict listed.
          PersistenceError  — store failure; nothing is left half-written.
        """
        # Both checks run so one response can report both conflicts.
        conflicts = find_conflicts(self._store, email, username)
        if conflicts:
            raise ConflictError(conflicts)

        password_hash = self._hasher.hash(password)

        # User row and refresh claim commit together or not at all.
        with self._store.atomic():
            user = self._store.create_user(
                email=email,
                username=username,
                password_hash=password_hash,
            )
            tokens = self._issue_tokens(user.id)

        logger.info("User %s signed up", user.id)
        return tokens

    # ── Login ──────────────────────────────────────────────────────────────

    def login(self, identity: str, password: str) -> TokenPair:
        """
        Authenticates by email or username and issues a new token pair.

        Raises:
          CredentialsError — unknown identity or wrong password. Both cases
          raise the same error and both run one bcrypt comparison.
        """
        user = self._store.find_user_by_email_or_username(identity)

        if user is None:
            self._hasher.verify_dummy(password)
            raise CredentialsError()

        if not self._hasher.verify(user.password_hash, password):
            raise CredentialsError()

        with self._store.atomic():
            tokens = self._issue_tokens(user.id)

        logger.info("User %s logged in", user.id)
        return tokens

    # ── Refresh ────────────────────────────────────────────────────────────

    def refresh_access_token(self, refresh_token: str | None) -> AccessGrant:
        """
        Exchanges a refresh token for a new access token.

        The token is honoured only if its signature verifies, it is a refresh
        token, a stored claim row matches its exact (issuer, issued_at,
        expires_at) triple and its token_id, and it has not expired.

        Raises:
          TokenError(403, REFRESH_TOKEN_INVALID, clear_cookies=True)
        """
        if not refresh_token:
            raise _refresh_forbidden(TokenErrorKind.MISSING)

        try:
            claims = self._issuer.verify(refresh_token)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc.kind.value)
            raise _refresh_forbidden(exc.kind) from exc

        if claims.token_type != REFRESH_TOKEN:
            logger.info("Refresh rejected: %s token presented", claims.token_type)
            raise _refresh_forbidden(TokenErrorKind.MALFORMED)

        record = self._store.find_refresh_claim(
            claims.issuer,
            claims.issued_at,
            claims.expires_at,
            claims.token_id,
        )
        if record is None:
            logger.info("Refresh rejected for issuer %s: no stored claim", claims.issuer)
            raise _refresh_forbidden(TokenErrorKind.REVOKED_OR_UNKNOWN)

        if claims.is_expired(self._issuer.now()):
            logger.info("Refresh rejected for issuer %s: expired", claims.issuer)
            raise _refresh_forbidden(TokenErrorKind.EXPIRED)

        access_token, access_claims = self._issuer.issue_access_token(claims.issuer)
        logger.info("Access token renewed for issuer %s", claims.issuer)
        return AccessGrant(access_token=access_token, access_claims=access_claims)

    # ── Logout ─────────────────────────────────────────────────────────────

    def logout(self, refresh_token: str | None) -> None:
        """
        Deletes the stored claim row of `refresh_token`, revoking it.

        Missing, malformed or already-revoked tokens are a no-op: the caller
        clears the cookies either way.
        """
        if not refresh_token:
            return

        try:
            claims = self._issuer.verify(refresh_token)
        except TokenError as exc:
            logger.info("Logout with unusable refresh token: %s", exc.kind.value)
            return

        try:
            with self._store.atomic():
                deleted = self._store.delete_refresh_claim(
                    claims.issuer,
                    claims.issued_at,
                    claims.expires_at,
                    claims.token_id,
                )
        except PersistenceError as exc:
            # The client must still drop its cookies.
            raise PersistenceError(clear_cookies=True) from exc
        logger.info("Logout for issuer %s removed %d refresh claim(s)", claims.issuer, deleted)

    # ── Private helpers ────────────────────────────────────────────────────

    def _issue_tokens(self, user_id: int) -> TokenPair:
        """Mints both tokens and stores the refresh claims. Call inside atomic()."""
        subject = str(user_id)
        access_token, access_claims = self._issuer.issue_access_token(subject)
        refresh_token, refresh_claims = self._issuer.issue_refresh_token(subject)
        self._store.create_refresh_claim(user_id, refresh_claims)
        return TokenPair(
            access_token=access_token,
            access_claims=access_claims,
            refresh_token=refresh_token,
            refresh_claims=refresh_claims,
        )
