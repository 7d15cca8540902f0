"""Tests for token signing and parsing."""

from datetime import timedelta

import jwt
import pytest
from jwt.utils import base64url_encode

from innosistemas.services.signer import (
    Signer,
    SigningKey,
    TokenFailure,
    TokenKind,
    TokenParseError,
)


class TestIssueAndParse:
    """Round-trip and claim tests."""

    @pytest.mark.parametrize("kind", [TokenKind.ACCESS, TokenKind.REFRESH])
    def test_round_trip(self, signer, clock, kind):
        """A freshly issued token parses back to the same claims."""
        token = signer.issue("ana.perez@udea.edu.co", kind, "student", timedelta(minutes=5))

        envelope = signer.parse(token)

        assert envelope.subject == "ana.perez@udea.edu.co"
        assert envelope.kind == kind
        assert envelope.role == "student"
        assert envelope.issued_at == clock.now
        assert envelope.expires_at == clock.now + timedelta(minutes=5)

    def test_role_is_optional(self, signer):
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(minutes=5))
        assert signer.parse(token).role is None

    def test_tokens_in_same_second_are_distinct(self, signer):
        """Two tokens for the same subject and instant differ by their jti."""
        first = signer.issue("ana.perez@udea.edu.co", TokenKind.REFRESH, None, timedelta(days=1))
        second = signer.issue("ana.perez@udea.edu.co", TokenKind.REFRESH, None, timedelta(days=1))

        assert first != second
        assert signer.parse(first).jti != signer.parse(second).jti

    def test_expiry_after_issuance_for_subsecond_ttl(self, signer):
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(milliseconds=10))
        envelope = signer.parse(token)
        assert envelope.expires_at > envelope.issued_at

    @pytest.mark.parametrize("ttl", [timedelta(seconds=1), timedelta(seconds=10)])
    def test_fractional_issue_time_gets_full_ttl(self, signer, clock, ttl):
        """A token minted late in a second still lives at least ``ttl``."""
        clock.now = clock.now.replace(microsecond=999000)
        issued = clock.now

        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, ttl)

        assert signer.parse(token).expires_at >= issued + ttl
        clock.now = issued + ttl
        assert signer.parse(token).subject == "ana.perez@udea.edu.co"

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-5)])
    def test_non_positive_ttl_rejected(self, signer, ttl):
        with pytest.raises(ValueError):
            signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, ttl)


class TestExpiry:
    def test_expired_token_rejected(self, signer, clock):
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(minutes=5))
        clock.advance(minutes=5, seconds=1)

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.EXPIRED

    def test_token_valid_at_exact_expiry(self, signer, clock):
        """Expiry means now > exp, so the boundary instant is still valid."""
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(minutes=5))
        clock.advance(minutes=5)

        assert signer.parse(token).subject == "ana.perez@udea.edu.co"

    def test_expiry_check_can_be_skipped(self, signer, clock):
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(minutes=5))
        clock.advance(days=30)

        envelope = signer.parse(token, verify_expiry=False)

        assert envelope.subject == "ana.perez@udea.edu.co"


class TestRejection:
    """Tampered and structurally invalid tokens."""

    def test_token_from_another_key_has_bad_signature(self, signer, clock):
        other = Signer(SigningKey(secret=b"another-secret-key-also-32-bytes-long!"), clock=clock)
        token = other.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, None, timedelta(minutes=5))

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.BAD_SIGNATURE

    def test_tampered_payload_has_bad_signature(self, signer):
        token = signer.issue("ana.perez@udea.edu.co", TokenKind.ACCESS, "student", timedelta(minutes=5))
        header, _, signature = token.split(".")
        forged_payload = base64url_encode(
            b'{"sub":"admin@udea.edu.co","iat":1,"exp":9999999999,"type":"access","jti":"x","role":"admin"}'
        ).decode()

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(f"{header}.{forged_payload}.{signature}")

        assert exc_info.value.failure == TokenFailure.BAD_SIGNATURE

    def test_unsigned_token_rejected(self, signer):
        """An alg=none token never passes, whatever its claims say."""
        token = jwt.encode(
            {"sub": "admin@udea.edu.co", "iat": 1, "exp": 9999999999, "type": "access", "jti": "x"},
            key=None,
            algorithm="none",
        )

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure in (TokenFailure.BAD_SIGNATURE, TokenFailure.MALFORMED)

    @pytest.mark.parametrize("token", ["", "not-a-token", "a.b.c", "invalid.token.here"])
    def test_garbage_is_malformed(self, signer, token):
        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.MALFORMED

    def test_missing_kind_claim_is_malformed(self, signer, signing_key, clock):
        now = int(clock.now.timestamp())
        token = jwt.encode(
            {"sub": "ana.perez@udea.edu.co", "iat": now, "exp": now + 60, "jti": "x"},
            signing_key.secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.MALFORMED

    def test_unknown_kind_is_malformed(self, signer, signing_key, clock):
        now = int(clock.now.timestamp())
        token = jwt.encode(
            {"sub": "ana.perez@udea.edu.co", "iat": now, "exp": now + 60, "jti": "x", "type": "id"},
            signing_key.secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.MALFORMED

    def test_expiry_before_issuance_is_malformed(self, signer, signing_key, clock):
        now = int(clock.now.timestamp())
        token = jwt.encode(
            {"sub": "ana.perez@udea.edu.co", "iat": now, "exp": now - 60, "jti": "x", "type": "access"},
            signing_key.secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenParseError) as exc_info:
            signer.parse(token)

        assert exc_info.value.failure == TokenFailure.MALFORMED


class TestSigningKey:
    def test_repr_hides_secret(self, signing_key):
        assert signing_key.secret.decode() not in repr(signing_key)

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            SigningKey(secret=b"")

    def test_asymmetric_algorithm_rejected(self):
        with pytest.raises(ValueError):
            SigningKey(secret=b"x" * 32, algorithm="RS256")

    def test_from_settings(self, test_settings):
        key = SigningKey.from_settings(test_settings)
        assert key.secret == test_settings.jwt_secret_key.get_secret_value().encode()
        assert key.algorithm == "HS256"
