"""User model for registration and authentication."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from innosistemas.models.base import BaseModel, utcnow


class Role(StrEnum):
    STUDENT = "student"
    PROFESSOR = "professor"
    ADMIN = "admin"


class User(BaseModel):
    """Registered user of the platform.

    The email is the token subject. Disabled users keep their record but
    cannot log in or refresh sessions.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    identity_document: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.STUDENT.value)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
