"""Pydantic schemas for user registration."""

import re
from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from innosistemas.core import settings

_EMAIL_PATTERN = re.compile(r"^[\w.+\-]+@([\w\-]+\.)+[\w\-]+$")


class UserRegistrationRequest(BaseModel):
    """Request to register a new user with an institutional email."""

    name: str = Field(..., min_length=1, max_length=255)
    identity_document: str = Field(
        ...,
        pattern=r"^[0-9]{7,10}$",
        description="National identity document (7-10 digits)",
    )
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=128)
    role: Literal["student", "professor"] = "student"

    @field_validator("email")
    @classmethod
    def _institutional_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        domain = settings.institutional_email_domain
        if domain and not value.endswith(f"@{domain}"):
            raise ValueError(f"Email must belong to the institutional domain @{domain}")
        return value


class UserResponse(BaseModel):
    """Registered user, without credentials."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: str
    enabled: bool
    registered_at: datetime
