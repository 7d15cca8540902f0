"""User lookup and registration."""

import logging
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from innosistemas.models.user import Role, User
from innosistemas.services.passwords import hash_password

logger = logging.getLogger(__name__)


class UserLookup(Protocol):
    async def find_by_subject(self, identifier: str) -> User | None: ...


class UserError(Exception):
    """Base user service error."""

    pass


class DuplicateUserError(UserError):
    """Email or identity document already registered."""

    pass


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Service for user persistence operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_subject(self, identifier: str) -> User | None:
        """Get a user by the token subject (their email)."""
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(identifier))
        )
        return result.scalar_one_or_none()

    async def register(
        self,
        name: str,
        email: str,
        identity_document: str,
        password: str,
        role: Role = Role.STUDENT,
    ) -> User:
        """Create a new enabled user.

        Raises DuplicateUserError if the email or identity document is taken.
        """
        email = normalize_email(email)
        result = await self.session.execute(
            select(User.email, User.identity_document).where(
                or_(User.email == email, User.identity_document == identity_document)
            )
        )
        existing = result.first()
        if existing is not None:
            if existing.email == email:
                raise DuplicateUserError("Email is already registered")
            raise DuplicateUserError("Identity document is already registered")

        user = User(
            name=name.strip(),
            email=email,
            identity_document=identity_document,
            password_hash=hash_password(password),
            role=role.value,
            enabled=True,
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)

        logger.info(f"Registered user: {email} ({role})")
        return user
