"""JWT signing and verification for access and refresh tokens.

The Signer only knows how to mint and verify compact HMAC-signed envelopes.
It holds no state besides the immutable SigningKey and never touches the
revocation store; see TokenService for the full validation sequence.
"""

import math
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import jwt
from jwt.exceptions import (
    InvalidAlgorithmError,
    InvalidSignatureError,
    PyJWTError,
)

from innosistemas.core.config import Settings

REQUIRED_CLAIMS = ["sub", "iat", "exp", "type", "jti"]


class TokenKind(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailure(StrEnum):
    """Why a token was not accepted. Every member means "unauthenticated"."""

    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"
    REVOKED = "revoked"
    WRONG_KIND = "wrong_kind"
    STORE_UNAVAILABLE = "store_unavailable"


class TokenParseError(Exception):
    """Raised by Signer.parse with the specific failure kind."""

    def __init__(self, failure: TokenFailure, message: str):
        super().__init__(message)
        self.failure = failure


@dataclass(frozen=True)
class SigningKey:
    """Process-wide HMAC secret. Loaded once at startup, shared read-only."""

    secret: bytes = field(repr=False)
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Signing key must not be empty")
        if not self.algorithm.startswith("HS"):
            raise ValueError(f"Unsupported signing algorithm: {self.algorithm}")

    @classmethod
    def from_settings(cls, config: Settings) -> "SigningKey":
        return cls(
            secret=config.jwt_secret_key.get_secret_value().encode(),
            algorithm=config.jwt_algorithm,
        )


@dataclass(frozen=True)
class Envelope:
    """Decoded claim set of a verified token."""

    subject: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    jti: str
    role: str | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Signer:
    """Mint and verify signed token envelopes."""

    def __init__(self, key: SigningKey, clock: Callable[[], datetime] = _utcnow):
        self._key = key
        self._clock = clock

    def issue(self, subject: str, kind: TokenKind, role: str | None, ttl: timedelta) -> str:
        """Create a signed token expiring ``ttl`` from now."""
        if ttl.total_seconds() <= 0:
            raise ValueError("Token TTL must be positive")

        now = self._clock().timestamp()
        payload: dict[str, object] = {
            "sub": subject,
            "iat": int(now),
            # Round up so the token never expires before now + ttl
            "exp": math.ceil(now + ttl.total_seconds()),
            "type": kind.value,
            # Keeps tokens minted in the same second distinct
            "jti": secrets.token_hex(16),
        }
        if role is not None:
            payload["role"] = role

        token = jwt.encode(payload, self._key.secret, algorithm=self._key.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token)

    def parse(self, token: str, verify_expiry: bool = True) -> Envelope:
        """Verify the signature, then decode and check the claims.

        Raises:
            TokenParseError: with MALFORMED, BAD_SIGNATURE or EXPIRED.
        """
        try:
            claims = jwt.decode(
                token,
                self._key.secret,
                algorithms=[self._key.algorithm],
                # Expiry is checked below against the injected clock
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except InvalidSignatureError as e:
            raise TokenParseError(
                TokenFailure.BAD_SIGNATURE, "Signature verification failed"
            ) from e
        except InvalidAlgorithmError as e:
            raise TokenParseError(
                TokenFailure.BAD_SIGNATURE, "Token signed with another algorithm"
            ) from e
        except PyJWTError as e:
            raise TokenParseError(TokenFailure.MALFORMED, f"Malformed token: {e}") from e

        envelope = self._envelope_from_claims(claims)

        if verify_expiry and self._clock() > envelope.expires_at:
            raise TokenParseError(TokenFailure.EXPIRED, "Token has expired")
        return envelope

    @staticmethod
    def _envelope_from_claims(claims: dict[str, object]) -> Envelope:
        subject = claims["sub"]
        issued_at = claims["iat"]
        expires_at = claims["exp"]
        kind = claims["type"]
        jti = claims["jti"]
        role = claims.get("role")

        if not isinstance(subject, str) or not subject:
            raise TokenParseError(TokenFailure.MALFORMED, "Token subject is missing")
        if isinstance(issued_at, bool) or not isinstance(issued_at, int | float):
            raise TokenParseError(TokenFailure.MALFORMED, "Token issued-at is not a timestamp")
        if isinstance(expires_at, bool) or not isinstance(expires_at, int | float):
            raise TokenParseError(TokenFailure.MALFORMED, "Token expiry is not a timestamp")
        if expires_at <= issued_at:
            raise TokenParseError(TokenFailure.MALFORMED, "Token expires before it was issued")
        if kind not in (TokenKind.ACCESS.value, TokenKind.REFRESH.value):
            raise TokenParseError(TokenFailure.MALFORMED, "Unknown token type")
        if not isinstance(jti, str):
            raise TokenParseError(TokenFailure.MALFORMED, "Token id is not a string")
        if role is not None and not isinstance(role, str):
            raise TokenParseError(TokenFailure.MALFORMED, "Token role is not a string")

        return Envelope(
            subject=subject,
            kind=TokenKind(kind),
            issued_at=datetime.fromtimestamp(issued_at, UTC),
            expires_at=datetime.fromtimestamp(expires_at, UTC),
            jti=jti,
            role=role,
        )
