"""Bearer token extraction and request authentication."""

import logging
from dataclasses import dataclass
from enum import StrEnum

from innosistemas.services.revocation_store import StoreUnavailableError
from innosistemas.services.signer import TokenFailure, TokenKind
from innosistemas.services.tokens import TokenService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class HeaderFailure(StrEnum):
    MISSING_HEADER = "missing_header"
    MALFORMED_HEADER = "malformed_header"
    EMPTY_TOKEN = "empty_token"


class AuthorizationHeaderError(Exception):
    """The Authorization header does not carry a bearer token."""

    def __init__(self, failure: HeaderFailure):
        super().__init__(f"Authorization header rejected: {failure}")
        self.failure = failure


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, available to handlers for the rest of the request."""

    subject: str
    role: str | None = None


class TokenValidator:
    """Turn an Authorization header into an Identity, or None."""

    def __init__(self, token_service: TokenService):
        self.token_service = token_service

    @staticmethod
    def extract(header: str | None) -> str:
        """Return the token from a ``Bearer <token>`` header.

        The prefix is matched exactly and case-sensitively.

        Raises:
            AuthorizationHeaderError: MISSING_HEADER, MALFORMED_HEADER or EMPTY_TOKEN.
        """
        if header is None:
            raise AuthorizationHeaderError(HeaderFailure.MISSING_HEADER)
        if not header.startswith(BEARER_PREFIX):
            raise AuthorizationHeaderError(HeaderFailure.MALFORMED_HEADER)
        token = header[len(BEARER_PREFIX) :]
        if not token.strip():
            raise AuthorizationHeaderError(HeaderFailure.EMPTY_TOKEN)
        return token

    async def authenticate(self, header: str | None) -> Identity | None:
        """Resolve the caller from an Authorization header.

        All header and token failures collapse to None; the specific kind is
        only logged.

        Raises:
            StoreUnavailableError: if the revocation store could not be consulted.
        """
        try:
            token = self.extract(header)
        except AuthorizationHeaderError as e:
            logger.debug(f"Unauthenticated request: {e.failure}")
            return None

        result = await self.token_service.validate(token, TokenKind.ACCESS)
        if result.failure == TokenFailure.STORE_UNAVAILABLE:
            raise StoreUnavailableError("Revocation store unavailable during authentication")
        if not result.ok:
            logger.debug(f"Unauthenticated request: {result.failure}")
            return None

        return Identity(subject=result.envelope.subject, role=result.envelope.role)
