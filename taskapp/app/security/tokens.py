"""
security/tokens.py — Signed access and refresh tokens (PyJWT, HMAC).

Token design:
  - Access token:  JWT, short TTL (JWT_ACCESS_TOKEN_EXPIRES), type "access".
  - Refresh token: JWT, long TTL (JWT_REFRESH_TOKEN_EXPIRES), type "refresh".
    Its (iss, iat, exp) triple is mirrored into the refresh_tokens table by
    the session service; that row is what makes the token usable.
  - Claims: sub = iss = str(user_id), iat, exp (integer Unix seconds),
    type, jti (random, keeps two tokens minted in the same second distinct).

verify() checks the signature and claim shape only. Expiry is decided by the
caller (TokenClaims.is_expired), because access and refresh tokens are held to
different policies.

One SigningKey per process, built from config at startup and never rotated.
Rotation would need a `kid` header to pick the key on verify.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Mapping

import jwt

from taskapp.app.errors import TokenError, TokenErrorKind

ACCESS_TOKEN  = "access"
REFRESH_TOKEN = "refresh"

_REQUIRED_CLAIMS = ["sub", "iss", "iat", "exp", "type"]


@dataclass(frozen=True)
class SigningKey:
    secret: str
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Token signing secret must not be empty.")
        if self.algorithm not in ("HS256", "HS384", "HS512"):
            raise ValueError(f"Unsupported signing algorithm: {self.algorithm!r}.")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SigningKey":
        return cls(
            secret=config["JWT_SECRET_KEY"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    def __repr__(self) -> str:
        return f"SigningKey(algorithm={self.algorithm!r}, secret=<redacted>)"


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    issuer: str
    issued_at: int
    expires_at: int
    token_type: str
    token_id: str

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def to_payload(self) -> dict:
        return {
            "sub":  self.subject,
            "iss":  self.issuer,
            "iat":  self.issued_at,
            "exp":  self.expires_at,
            "type": self.token_type,
            "jti":  self.token_id,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TokenClaims":
        """Raises TokenError(MALFORMED) if a claim is missing or mistyped."""
        try:
            issued_at = payload["iat"]
            expires_at = payload["exp"]
            # bool is an int subclass; neither belongs in a timestamp.
            if type(issued_at) is not int or type(expires_at) is not int:
                raise TypeError("timestamps must be integers")
            return cls(
                subject=str(payload["sub"]),
                issuer=str(payload["iss"]),
                issued_at=issued_at,
                expires_at=expires_at,
                token_type=str(payload["type"]),
                token_id=str(payload.get("jti", "")),
            )
        except (KeyError, TypeError) as exc:
            raise TokenError(TokenErrorKind.MALFORMED) from exc


class TokenIssuer:
    """
    Mints and verifies tokens with one immutable SigningKey.

    `clock` returns seconds since the epoch; tests inject a fake one to move
    time forward without sleeping.
    """

    def __init__(
            self,
            signing_key: SigningKey,
            access_ttl: timedelta,
            refresh_ttl: timedelta,
            clock: Callable[[], float] = time.time,
    ) -> None:
        self._key = signing_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def issue_access_token(self, subject_id: str) -> tuple[str, TokenClaims]:
        return self._issue(subject_id, ACCESS_TOKEN, self.access_ttl)

    def issue_refresh_token(self, subject_id: str) -> tuple[str, TokenClaims]:
        return self._issue(subject_id, REFRESH_TOKEN, self.refresh_ttl)

    def verify(self, token: str) -> TokenClaims:
        """
        Checks signature and claim shape, NOT expiry.

        Raises TokenError(MALFORMED) for anything that is not a token signed
        with our key.
        """
        try:
            payload = jwt.decode(
                token,
                self._key.secret,
                algorithms=[self._key.algorithm],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": _REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidTokenError as exc:
            # Covers: bad signature, malformed token, missing claims, wrong alg.
            raise TokenError(TokenErrorKind.MALFORMED) from exc

        return TokenClaims.from_payload(payload)

    def _issue(
            self,
            subject_id: str,
            token_type: str,
            ttl: timedelta,
    ) -> tuple[str, TokenClaims]:
        now = self.now()
        claims = TokenClaims(
            subject=str(subject_id),
            issuer=str(subject_id),
            issued_at=now,
            expires_at=now + int(ttl.total_seconds()),
            token_type=token_type,
            token_id=secrets.token_hex(8),
        )
        token = jwt.encode(
            claims.to_payload(),
            self._key.secret,
            algorithm=self._key.algorithm,
        )
        return token, claims
