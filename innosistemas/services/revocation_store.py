"""Durable record of revoked tokens.

Tokens are keyed by the SHA-256 of their raw string, so a lookup never needs
to parse (or trust) the token. Each call runs in its own short-lived session:
revoking one token never holds a transaction that another request's
validation would have to wait on.
"""

import asyncio
import hashlib
import logging
from collections.abc import Awaitable
from datetime import datetime
from enum import StrEnum
from typing import Protocol, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from innosistemas.models.revoked_token import RevokedToken
from innosistemas.services.signer import TokenKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreUnavailableError(Exception):
    """The revocation store could not answer in time or at all.

    Never interpreted as "revoked" or "not revoked"; callers surface it as a
    service-unavailable condition.
    """


class RevocationOutcome(StrEnum):
    REVOKED = "revoked"
    ALREADY_REVOKED = "already_revoked"
    STORE_UNAVAILABLE = "store_unavailable"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    WRONG_KIND = "wrong_kind"


def token_digest(token: str) -> str:
    """Return the hex SHA-256 of a raw token string."""
    return hashlib.sha256(token.encode()).hexdigest()


class RevocationStore(Protocol):
    async def exists(self, token: str) -> bool: ...

    async def record(
        self, token: str, subject: str, expires_at: datetime, kind: TokenKind
    ) -> RevocationOutcome: ...


class SqlRevocationStore:
    """RevocationStore backed by the ``revoked_tokens`` table.

    Uniqueness is enforced by the primary key: of two concurrent ``record``
    calls for one token exactly one INSERT commits, the other gets an
    IntegrityError and reports ALREADY_REVOKED.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], timeout: float = 5.0):
        self._session_maker = session_maker
        self._timeout = timeout

    async def exists(self, token: str) -> bool:
        return await self._bounded(self._exists(token_digest(token)), "exists")

    async def record(
        self, token: str, subject: str, expires_at: datetime, kind: TokenKind
    ) -> RevocationOutcome:
        return await self._bounded(
            self._insert(token_digest(token), subject, expires_at, kind), "record"
        )

    async def purge_expired(self, now: datetime) -> int:
        """Delete records whose token expired before ``now``. Returns count removed."""
        return await self._bounded(self._purge(now), "purge")

    async def _exists(self, digest: str) -> bool:
        async with self._session_maker() as session:
            result = await session.execute(
                select(RevokedToken.token_hash).where(RevokedToken.token_hash == digest)
            )
            return result.scalar_one_or_none() is not None

    async def _insert(
        self, digest: str, subject: str, expires_at: datetime, kind: TokenKind
    ) -> RevocationOutcome:
        async with self._session_maker() as session:
            session.add(
                RevokedToken(
                    token_hash=digest,
                    subject=subject,
                    token_type=kind.value,
                    expires_at=expires_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return RevocationOutcome.ALREADY_REVOKED
        return RevocationOutcome.REVOKED

    async def _purge(self, now: datetime) -> int:
        async with self._session_maker() as session:
            result = await session.execute(
                delete(RevokedToken).where(RevokedToken.expires_at < now)
            )
            await session.commit()
            return result.rowcount or 0

    async def _bounded(self, operation: Awaitable[T], name: str) -> T:
        try:
            async with asyncio.timeout(self._timeout):
                return await operation
        except TimeoutError as e:
            logger.error(f"Revocation store {name} timed out after {self._timeout}s")
            raise StoreUnavailableError(f"Revocation store {name} timed out") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Revocation store {name} failed: {e}")
            raise StoreUnavailableError(f"Revocation store {name} failed") from e
