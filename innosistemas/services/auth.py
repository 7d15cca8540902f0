"""Authentication use cases: login, logout and refresh."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from innosistemas.models.user import User
from innosistemas.services.passwords import dummy_hash, verify_password
from innosistemas.services.revocation_store import RevocationOutcome, StoreUnavailableError
from innosistemas.services.signer import TokenFailure, TokenKind, TokenParseError
from innosistemas.services.tokens import TokenPair, TokenService
from innosistemas.services.user import UserLookup

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base authentication error."""

    pass


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password."""

    pass


class AccountDisabledError(AuthError):
    """User account is disabled."""

    pass


class InvalidTokenError(AuthError):
    """A presented token was rejected. ``failure`` is for logs only."""

    def __init__(self, failure: TokenFailure, message: str = "Invalid or expired session"):
        super().__init__(message)
        self.failure = failure


@dataclass(frozen=True)
class LogoutResult:
    access_token_revoked: bool
    refresh_token_revoked: bool


class AuthService:
    """Orchestrates users, password checks and tokens."""

    def __init__(
        self,
        token_service: TokenService,
        users: UserLookup,
        password_verifier: Callable[[str, str], bool] = verify_password,
    ):
        self.token_service = token_service
        self.users = users
        self.password_verifier = password_verifier

    async def authenticate(self, email: str, password: str) -> User:
        """Return the user for valid credentials.

        Raises InvalidCredentialsError for both "user not found" and
        "wrong password" to prevent user enumeration.
        """
        user = await self.users.find_by_subject(email)

        if user is None:
            # Perform a dummy verification to prevent timing attacks
            self.password_verifier(password, dummy_hash())
            raise InvalidCredentialsError("Invalid email or password")

        if not self.password_verifier(password, user.password_hash):
            raise InvalidCredentialsError("Invalid email or password")

        if not user.enabled:
            raise AccountDisabledError("User account is disabled")

        return user

    async def login(self, email: str, password: str) -> TokenPair:
        user = await self.authenticate(email, password)
        user.last_login_at = datetime.now(UTC)
        logger.info(f"User logged in: {user.email}")
        return self.token_service.issue_pair(user.email, user.role)

    async def logout(self, access_token: str, refresh_token: str | None = None) -> LogoutResult:
        """Revoke the access token and, best effort, the refresh token.

        Raises StoreUnavailableError if the access token could not be revoked
        because the store is down. A failure on the refresh token never undoes
        the access token revocation.
        """
        outcome = await self.token_service.revoke(access_token, TokenKind.ACCESS)
        if outcome == RevocationOutcome.STORE_UNAVAILABLE:
            raise StoreUnavailableError("Could not revoke access token")
        access_revoked = outcome == RevocationOutcome.REVOKED

        refresh_revoked = False
        if refresh_token:
            owner = self._subject_of(access_token)
            if owner is None or self._subject_of(refresh_token) != owner:
                logger.warning(
                    "Refresh token presented at logout does not belong to the session owner",
                    extra={"subject": owner, "token_kind": TokenKind.REFRESH},
                )
                return LogoutResult(
                    access_token_revoked=access_revoked, refresh_token_revoked=False
                )
            refresh_outcome = await self.token_service.revoke(refresh_token, TokenKind.REFRESH)
            refresh_revoked = refresh_outcome == RevocationOutcome.REVOKED
            if not refresh_revoked:
                logger.warning(f"Refresh token not revoked during logout: {refresh_outcome}")

        return LogoutResult(
            access_token_revoked=access_revoked,
            refresh_token_revoked=refresh_revoked,
        )

    def _subject_of(self, token: str) -> str | None:
        try:
            return self.token_service.signer.parse(token, verify_expiry=False).subject
        except TokenParseError:
            return None

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair, rotating the refresh token.

        The presented token is revoked after the new pair is minted. If that
        revocation fails the new pair is still returned.
        """
        result = await self.token_service.validate(refresh_token, TokenKind.REFRESH)
        if result.failure == TokenFailure.STORE_UNAVAILABLE:
            raise StoreUnavailableError("Could not check refresh token revocation")
        if not result.ok:
            raise InvalidTokenError(result.failure)

        user = await self.users.find_by_subject(result.envelope.subject)
        if user is None:
            raise InvalidTokenError(TokenFailure.MALFORMED, "Token subject no longer exists")
        if not user.enabled:
            raise AccountDisabledError("User account is disabled")

        tokens = self.token_service.issue_pair(user.email, user.role)

        outcome = await self.token_service.revoke(refresh_token, TokenKind.REFRESH)
        if outcome != RevocationOutcome.REVOKED:
            logger.warning(f"Used refresh token for {user.email} not revoked: {outcome}")

        return tokens
