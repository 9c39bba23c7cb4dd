"""
models/refresh_token.py — RefreshTokenRecord table definition.

Each row mirrors the claims of one issued refresh token. A refresh token is
only honoured while a row with exactly its (issuer, issued_at, expires_at)
triple and its token_id (jti) exists; deleting the row (logout) revokes that
token only. Two sessions minted in the same second share a triple but never a
token_id.

issued_at / expires_at hold the integer Unix seconds signed into the JWT, so
the lookup is an exact integer comparison with no timezone conversion.

FK policy: user_id ON DELETE CASCADE — records are owned by the user.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskapp.app.extensions import db


class RefreshTokenRecord(db.Model):
    __tablename__ = "refresh_tokens"

    __table_args__ = (
        Index(
            "idx_refresh_tokens_claims",
            "issuer",
            "issued_at",
            "expires_at",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # str(user_id); the token's `iss` claim.
    issuer: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    issued_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    expires_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # The token's `jti` claim.
    token_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RefreshTokenRecord id={self.id} "
            f"issuer={self.issuer!r} "
            f"expires_at={self.expires_at}>"
        )
