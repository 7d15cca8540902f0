# InnoSistemas Services
from innosistemas.services.auth import AuthService, LogoutResult
from innosistemas.services.revocation_store import (
    RevocationOutcome,
    RevocationStore,
    SqlRevocationStore,
    StoreUnavailableError,
)
from innosistemas.services.signer import Envelope, Signer, SigningKey, TokenFailure, TokenKind
from innosistemas.services.token_validator import Identity, TokenValidator
from innosistemas.services.tokens import TokenPair, TokenService, TokenValidation
from innosistemas.services.user import UserService

__all__ = [
    "AuthService",
    "Envelope",
    "Identity",
    "LogoutResult",
    "RevocationOutcome",
    "RevocationStore",
    "Signer",
    "SigningKey",
    "SqlRevocationStore",
    "StoreUnavailableError",
    "TokenFailure",
    "TokenKind",
    "TokenPair",
    "TokenService",
    "TokenValidation",
    "TokenValidator",
    "UserService",
]
