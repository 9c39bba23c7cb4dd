"""
store/credential_store.py — Persistence interface for users and refresh claims.

CredentialStore is the only way the session service touches the database.
It is passed in explicitly (never imported as a global), so unit tests can use
an in-memory double.

SqlAlchemyCredentialStore is the production adapter, bound to one SQLAlchemy
session (the request-scoped db.session in the app):
  - reads run directly on the session;
  - writes are flushed immediately and committed by atomic();
  - atomic() rolls back on any error and masks database failures as
    PersistenceError, so a failed signup never leaves a user row behind;
  - a unique-constraint race on user creation surfaces as ConflictError,
    the same field-tagged error as the signup pre-checks.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator, Protocol

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskapp.app.errors import ConflictError, PersistenceError
from taskapp.app.models.refresh_token import RefreshTokenRecord
from taskapp.app.models.user import User
from taskapp.app.security.tokens import TokenClaims

logger = logging.getLogger(__name__)


def normalize_identity(value: str) -> str:
    """Case policy for emails and usernames, applied at write and lookup time."""
    return value.strip().lower()


def find_conflicts(store: "CredentialStore", email: str, username: str) -> dict[str, str]:
    """Maps each of email / username that is already taken to a field message."""
    conflicts: dict[str, str] = {}
    if store.exists_by_email(email):
        conflicts["email"] = "Email is already registered."
    if store.exists_by_username(username):
        conflicts["username"] = "Username is already registered."
    return conflicts


def _claim_filter(issuer: str, issued_at: int, expires_at: int, token_id: str | None) -> list:
    clauses = [
        RefreshTokenRecord.issuer == issuer,
        RefreshTokenRecord.issued_at == issued_at,
        RefreshTokenRecord.expires_at == expires_at,
    ]
    if token_id is not None:
        clauses.append(RefreshTokenRecord.token_id == token_id)
    return clauses


class CredentialStore(Protocol):

    def find_user_by_email_or_username(self, identity: str) -> User | None: ...
    def get_user(self, user_id: int) -> User | None: ...
    def exists_by_email(self, email: str) -> bool: ...
    def exists_by_username(self, username: str) -> bool: ...
    def create_user(self, email: str, username: str, password_hash: str) -> User: ...

    def find_refresh_claim(
        self, issuer: str, issued_at: int, expires_at: int, token_id: str | None = None
    ) -> RefreshTokenRecord | None: ...
    def create_refresh_claim(self, user_id: int, claims: TokenClaims) -> RefreshTokenRecord: ...
    def delete_refresh_claim(
        self, issuer: str, issued_at: int, expires_at: int, token_id: str | None = None
    ) -> int: ...

    def atomic(self) -> contextlib.AbstractContextManager: ...


class SqlAlchemyCredentialStore:

    def __init__(self, session: Session) -> None:
        self._session = session

    # ── Users ──────────────────────────────────────────────────────────────

    def find_user_by_email_or_username(self, identity: str) -> User | None:
        identity = normalize_identity(identity)
        return self._session.execute(
            select(User)
            .where(or_(User.email == identity, User.username == identity))
            .limit(1)
        ).scalar_one_or_none()

    def get_user(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def exists_by_email(self, email: str) -> bool:
        return self._session.execute(
            select(User.id).where(User.email == normalize_identity(email))
        ).first() is not None

    def exists_by_username(self, username: str) -> bool:
        return self._session.execute(
            select(User.id).where(User.username == normalize_identity(username))
        ).first() is not None

    def create_user(self, email: str, username: str, password_hash: str) -> User:
        user = User(
            email=normalize_identity(email),
            username=normalize_identity(username),
            password_hash=password_hash,
        )
        self._session.add(user)
        try:
            self._session.flush()  # populate user.id before tokens are minted
        except IntegrityError as exc:
            # A concurrent signup took the email or username after the
            # pre-checks ran. Report it as the same field-tagged conflict.
            self._session.rollback()
            conflicts = find_conflicts(self, email, username)
            if not conflicts:
                raise
            raise ConflictError(conflicts) from exc
        return user

    # ── Refresh claims ─────────────────────────────────────────────────────

    def find_refresh_claim(
            self,
            issuer: str,
            issued_at: int,
            expires_at: int,
            token_id: str | None = None,
    ) -> RefreshTokenRecord | None:
        return self._session.execute(
            select(RefreshTokenRecord)
            .where(*_claim_filter(issuer, issued_at, expires_at, token_id))
            .limit(1)
        ).scalar_one_or_none()

    def create_refresh_claim(self, user_id: int, claims: TokenClaims) -> RefreshTokenRecord:
        record = RefreshTokenRecord(
            user_id=user_id,
            issuer=claims.issuer,
            issued_at=claims.issued_at,
            expires_at=claims.expires_at,
            token_id=claims.token_id,
        )
        self._session.add(record)
        self._session.flush()
        return record

    def delete_refresh_claim(
            self,
            issuer: str,
            issued_at: int,
            expires_at: int,
            token_id: str | None = None,
    ) -> int:
        result = self._session.execute(
            delete(RefreshTokenRecord)
            .where(*_claim_filter(issuer, issued_at, expires_at, token_id))
        )
        return result.rowcount or 0

    # ── Transactions ───────────────────────────────────────────────────────

    @contextlib.contextmanager
    def atomic(self) -> Iterator["SqlAlchemyCredentialStore"]:
        try:
            yield self
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            logger.error("Credential store transaction failed: %s", exc, exc_info=True)
            raise PersistenceError() from exc
        except Exception:
            self._session.rollback()
            raise
