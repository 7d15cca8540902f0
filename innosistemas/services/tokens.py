"""Token issuance, validation and revocation.

A token's state (valid, expired, revoked, wrong kind, malformed) is never
stored. It is derived on every ``validate`` call from the token itself, the
revocation store and the clock, in one fixed order:

1. revocation lookup (by digest of the raw string)
2. signature and claim verification, including expiry
3. kind check

Every caller that needs a revocation-aware decision goes through
``TokenService.validate``.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from innosistemas.core.config import Settings
from innosistemas.services.revocation_store import (
    RevocationOutcome,
    RevocationStore,
    StoreUnavailableError,
)
from innosistemas.services.signer import (
    Envelope,
    Signer,
    TokenFailure,
    TokenKind,
    TokenParseError,
)

logger = logging.getLogger(__name__)

# Failures that point at corrupted input or a key/clock mismatch
_SUSPICIOUS_FAILURES = {TokenFailure.MALFORMED, TokenFailure.BAD_SIGNATURE}


@dataclass(frozen=True)
class TokenValidation:
    """Result of TokenService.validate: either an envelope or a failure."""

    envelope: Envelope | None = None
    failure: TokenFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def subject(self) -> str | None:
        return self.envelope.subject if self.envelope else None

    @property
    def role(self) -> str | None:
        return self.envelope.role if self.envelope else None

    @classmethod
    def failed(cls, failure: TokenFailure) -> "TokenValidation":
        return cls(failure=failure)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


class TokenService:
    """Issue, validate and revoke access/refresh tokens."""

    def __init__(
        self,
        signer: Signer,
        store: RevocationStore,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
    ):
        if access_ttl >= refresh_ttl:
            raise ValueError("Access token TTL must be shorter than refresh token TTL")
        self.signer = signer
        self.store = store
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(
        cls, config: Settings, signer: Signer, store: RevocationStore
    ) -> "TokenService":
        return cls(
            signer=signer,
            store=store,
            access_ttl=timedelta(minutes=config.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=config.jwt_refresh_token_expire_days),
        )

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.access_ttl.total_seconds())

    def issue_access(self, subject: str, role: str | None = None) -> str:
        return self.signer.issue(subject, TokenKind.ACCESS, role, self.access_ttl)

    def issue_refresh(self, subject: str, role: str | None = None) -> str:
        return self.signer.issue(subject, TokenKind.REFRESH, role, self.refresh_ttl)

    def issue_pair(self, subject: str, role: str | None = None) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access(subject, role),
            refresh_token=self.issue_refresh(subject, role),
            expires_in=self.access_expires_in,
        )

    async def validate(self, token: str, expected_kind: TokenKind) -> TokenValidation:
        """Derive the token's current state. Never raises for expected outcomes."""
        try:
            revoked = await self.store.exists(token)
        except StoreUnavailableError:
            return TokenValidation.failed(TokenFailure.STORE_UNAVAILABLE)
        if revoked:
            logger.debug(
                f"Rejected revoked {expected_kind} token",
                extra={"token_kind": expected_kind, "failure": TokenFailure.REVOKED},
            )
            return TokenValidation.failed(TokenFailure.REVOKED)

        try:
            envelope = self.signer.parse(token)
        except TokenParseError as e:
            self._log_parse_failure(e, expected_kind)
            return TokenValidation.failed(e.failure)

        if envelope.kind != expected_kind:
            logger.debug(
                f"Rejected {envelope.kind} token where {expected_kind} was expected "
                f"(subject={envelope.subject})",
                extra={
                    "subject": envelope.subject,
                    "token_kind": expected_kind,
                    "failure": TokenFailure.WRONG_KIND,
                },
            )
            return TokenValidation.failed(TokenFailure.WRONG_KIND)

        return TokenValidation(envelope=envelope)

    async def revoke(self, token: str, kind: TokenKind) -> RevocationOutcome:
        """Denylist a token. Expired tokens may still be revoked.

        A token that was already revoked is reported as ALREADY_REVOKED, not
        silently accepted.
        """
        try:
            envelope = self.signer.parse(token, verify_expiry=False)
        except TokenParseError as e:
            self._log_parse_failure(e, kind)
            if e.failure == TokenFailure.BAD_SIGNATURE:
                return RevocationOutcome.BAD_SIGNATURE
            return RevocationOutcome.MALFORMED

        if envelope.kind != kind:
            logger.warning(
                f"Refusing to revoke {envelope.kind} token as {kind} (subject={envelope.subject})"
            )
            return RevocationOutcome.WRONG_KIND

        try:
            outcome = await self.store.record(token, envelope.subject, envelope.expires_at, kind)
        except StoreUnavailableError:
            return RevocationOutcome.STORE_UNAVAILABLE

        if outcome == RevocationOutcome.ALREADY_REVOKED:
            logger.warning(
                f"Repeated revocation of {kind} token for {envelope.subject}",
                extra={"subject": envelope.subject, "token_kind": kind},
            )
        else:
            logger.info(
                f"Revoked {kind} token for {envelope.subject}",
                extra={"subject": envelope.subject, "token_kind": kind},
            )
        return outcome

    @staticmethod
    def _log_parse_failure(error: TokenParseError, kind: TokenKind) -> None:
        context = {"token_kind": kind, "failure": error.failure}
        if error.failure in _SUSPICIOUS_FAILURES:
            logger.warning(f"Rejected {kind} token: {error.failure} ({error})", extra=context)
        else:
            logger.debug(f"Rejected {kind} token: {error.failure}", extra=context)
