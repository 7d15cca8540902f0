"""Revoked tokens - survives process restarts."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from innosistemas.core.database import Base
from innosistemas.models.base import utcnow


class RevokedToken(Base):
    """A revoked access or refresh token, keyed by the SHA-256 of its string.

    Rows are written once and never updated. The subject is kept by value so
    the record stays meaningful after the user is deleted. Rows past their
    expiry are removed by the background sweep.
    """

    __tablename__ = "revoked_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    token_type: Mapped[str] = mapped_column(String(16), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<RevokedToken {self.token_type} subject={self.subject!r}>"
